"""Critical-path CSS extractor."""

from assetflow.tools.base import Tool

CRITICAL = Tool(
    name="critical",
    cli_command="critical",
    install_info="npm install --save-dev critical",
    default_args=("--inline",),
    launcher=("npx", "--no-install"),
)
