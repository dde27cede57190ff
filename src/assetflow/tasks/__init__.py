"""Task graph, scheduler and the default task set."""

from assetflow.tasks.base import RunReport, Task, TaskAction, TaskResult
from assetflow.tasks.builtin import BuildSession, build_scheduler, precache_globs
from assetflow.tasks.scheduler import DEFAULT_MAX_WORKERS, Scheduler

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "BuildSession",
    "RunReport",
    "Scheduler",
    "Task",
    "TaskAction",
    "TaskResult",
    "build_scheduler",
    "precache_globs",
]
