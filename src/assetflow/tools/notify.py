"""Desktop notification commands."""

from assetflow.tools.base import Tool

NOTIFY_SEND = Tool(
    name="notify-send",
    cli_command="notify-send",
    install_info="apt install libnotify-bin",
)

OSASCRIPT = Tool(
    name="osascript",
    cli_command="osascript",
    install_info="bundled with macOS",
)
