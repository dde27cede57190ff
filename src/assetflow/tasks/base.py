"""Task and run result definitions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

TaskAction = Callable[[], None]


@dataclass(frozen=True)
class Task:
    """A named unit of work with dependencies.

    A task without an action is a composite: it exists only to group its
    dependencies. ``parallel=True`` runs the dependencies concurrently.
    """

    name: str
    dependencies: tuple[str, ...] = ()
    action: TaskAction | None = None
    parallel: bool = False
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        result: dict[str, Any] = {"name": self.name}
        if self.dependencies:
            result["dependencies"] = list(self.dependencies)
        if self.parallel:
            result["parallel"] = True
        if self.description:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one task within a run."""

    name: str
    success: bool
    skipped: bool = False
    error: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class RunReport:
    """All task results of one scheduler run, in completion order."""

    target: str
    results: tuple[TaskResult, ...] = ()

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failed(self) -> list[str]:
        return [r.name for r in self.results if not r.success]

    def get(self, name: str) -> TaskResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None
