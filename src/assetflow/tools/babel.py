"""Babel JavaScript transpiler."""

from assetflow.tools.base import Tool

BABEL = Tool(
    name="babel",
    cli_command="babel",
    install_info="npm install --save-dev @babel/cli @babel/core @babel/preset-env",
    default_args=("--presets", "@babel/preset-env"),
    launcher=("npx", "--no-install"),
)
