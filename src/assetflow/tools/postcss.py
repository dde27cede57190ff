"""PostCSS with autoprefixer."""

from assetflow.tools.base import Tool

AUTOPREFIXER = Tool(
    name="autoprefixer",
    cli_command="postcss",
    install_info="npm install --save-dev postcss postcss-cli autoprefixer",
    default_args=("--use", "autoprefixer", "--no-map"),
    launcher=("npx", "--no-install"),
)
