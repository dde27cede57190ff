"""Dependency-ordered task execution."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from threading import Event, Lock

from assetflow.errors import BuildError, GraphError, GraphReason
from assetflow.tasks.base import RunReport, Task, TaskResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class Scheduler:
    """Registry of tasks that runs a task after its dependencies.

    The graph is kept acyclic at registration time. Dependencies may be
    registered after the tasks that name them; missing ones are reported
    when a run (or ``validate``) needs them.
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self.max_workers = max(1, max_workers)
        self._tasks: dict[str, Task] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, name: str) -> Task | None:
        return self._tasks.get(name)

    def register(self, task: Task) -> Task:
        """Add a task. Raises GraphError on a duplicate name or a cycle."""
        if task.name in self._tasks:
            raise GraphError(
                GraphReason.DUPLICATE, f"Task '{task.name}' is already registered"
            )
        for dep in task.dependencies:
            path = self._find_path(dep, task.name, set())
            if path is not None:
                cycle = " -> ".join([task.name, *path])
                raise GraphError(GraphReason.CYCLE, f"Dependency cycle: {cycle}")
        self._tasks[task.name] = task
        logger.debug("Registered task %s", task.name)
        return task

    def _find_path(self, start: str, target: str, seen: set[str]) -> list[str] | None:
        """Dependency path from `start` to `target`, or None."""
        if start == target:
            return [start]
        task = self._tasks.get(start)
        if task is None or start in seen:
            return None
        seen.add(start)
        for dep in task.dependencies:
            path = self._find_path(dep, target, seen)
            if path is not None:
                return [start, *path]
        return None

    def validate(self) -> None:
        """Raise GraphError if any task depends on an unregistered task."""
        for task in self._tasks.values():
            for dep in task.dependencies:
                if dep not in self._tasks:
                    raise GraphError(
                        GraphReason.MISSING_DEPENDENCY,
                        f"Task '{task.name}' depends on unknown task '{dep}'",
                    )

    def order(self, name: str) -> list[str]:
        """Dependency closure of `name`, dependencies first."""
        ordered: list[str] = []
        visited: set[str] = set()

        def visit(current: str, parent: str | None) -> None:
            if current in visited:
                return
            task = self._tasks.get(current)
            if task is None:
                if parent is None:
                    message = f"Unknown task '{current}'"
                else:
                    message = f"Task '{parent}' depends on unknown task '{current}'"
                raise GraphError(GraphReason.MISSING_DEPENDENCY, message)
            visited.add(current)
            for dep in task.dependencies:
                visit(dep, current)
            ordered.append(current)

        visit(name, None)
        return ordered

    def run(self, name: str) -> RunReport:
        """Run `name` and everything it depends on.

        The dependency closure is resolved before anything runs, so a
        missing task raises GraphError without side effects. Each task runs
        at most once per call.
        """
        closure = self.order(name)
        logger.info("Running %s (%d tasks)", name, len(closure))
        execution = _Execution(self._tasks, self.max_workers)
        execution.execute(name)
        report = RunReport(target=name, results=tuple(execution.results))
        if report.success:
            logger.info("%s finished", name)
        else:
            logger.warning("%s failed: %s", name, ", ".join(report.failed))
        return report


class _Execution:
    """State of a single run: memoized results shared across worker threads."""

    def __init__(self, tasks: dict[str, Task], max_workers: int) -> None:
        self.tasks = tasks
        self.max_workers = max_workers
        self.results: list[TaskResult] = []
        self._by_name: dict[str, TaskResult] = {}
        self._events: dict[str, Event] = {}
        self._lock = Lock()

    def execute(self, name: str) -> TaskResult:
        with self._lock:
            event = self._events.get(name)
            owner = event is None
            if event is None:
                event = self._events[name] = Event()

        if not owner:
            event.wait()
            return self._by_name[name]

        result = TaskResult(name, success=False, error="interrupted")
        try:
            result = self._execute(self.tasks[name])
        finally:
            with self._lock:
                self._by_name[name] = result
                self.results.append(result)
            event.set()
        return result

    def _execute(self, task: Task) -> TaskResult:
        dep_results = self._run_dependencies(task)
        failed = [r.name for r in dep_results if not r.success]
        if failed:
            logger.warning("Skipping %s: failed dependencies %s", task.name, failed)
            return TaskResult(
                task.name,
                success=False,
                skipped=True,
                error=f"dependency failed: {', '.join(failed)}",
            )
        if task.action is None:
            return TaskResult(task.name, success=True)

        logger.debug("Starting %s", task.name)
        start = time.monotonic()
        error: str | None = None
        try:
            task.action()
        except BuildError as e:
            error = str(e)
        except OSError as e:
            error = str(BuildError(f"{task.name}: {e}"))
        duration_ms = int((time.monotonic() - start) * 1000)

        if error is not None:
            logger.error("Task %s failed: %s", task.name, error)
            return TaskResult(task.name, False, error=error, duration_ms=duration_ms)
        logger.debug("Finished %s in %dms", task.name, duration_ms)
        return TaskResult(task.name, True, duration_ms=duration_ms)

    def _run_dependencies(self, task: Task) -> list[TaskResult]:
        deps = task.dependencies
        if not task.parallel or len(deps) < 2:
            return [self.execute(dep) for dep in deps]
        # A pool per group: nested groups never wait on their own workers
        workers = min(self.max_workers, len(deps))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=task.name
        ) as pool:
            futures = [pool.submit(self.execute, dep) for dep in deps]
            return [f.result() for f in futures]
