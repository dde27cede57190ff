"""Base external tool definition."""

import shutil
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Tool:
    """Definition of an external command-line tool used by a stage."""

    name: str
    cli_command: str
    install_info: str
    default_args: tuple[str, ...] = ()
    launcher: tuple[str, ...] = ()  # e.g. ("npx", "--no-install")

    @property
    def executable(self) -> str:
        """The binary that must be on PATH for this tool to run."""
        return self.launcher[0] if self.launcher else self.cli_command

    def is_installed(self) -> bool:
        """Check if this tool's executable is available in PATH."""
        return shutil.which(self.executable) is not None

    def command(self, *args: str) -> list[str]:
        """Full argv for invoking the tool with extra arguments."""
        return [*self.launcher, self.cli_command, *self.default_args, *args]

    def with_command(self, argv: tuple[str, ...]) -> "Tool":
        """Return a copy that runs `argv` instead of the default launcher/command."""
        if not argv:
            return self
        return replace(self, launcher=(), cli_command=argv[0], default_args=tuple(argv[1:]))
