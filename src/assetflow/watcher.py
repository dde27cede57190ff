"""Source watching with per-class debouncing."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from queue import Empty, Queue

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from assetflow.config.registry import PathRegistry
from assetflow.config.schema import AssetClass
from assetflow.errors import AssetflowError
from assetflow.notifier import Notifier

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.2

Dispatch = Callable[[AssetClass, list[Path]], object]


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A change to a source file of a known asset class."""

    path: Path
    asset_class: AssetClass
    kind: ChangeKind = ChangeKind.MODIFIED


class Debouncer:
    """Coalesces change events per asset class.

    Each event (re)arms its class's deadline to ``now + delay``; a class is
    due once its deadline passes with no newer event. Time is passed in so
    the logic can be exercised without sleeping.
    """

    def __init__(self, delay: float = DEFAULT_DEBOUNCE) -> None:
        self.delay = delay
        self._deadlines: dict[AssetClass, float] = {}
        self._paths: dict[AssetClass, set[Path]] = {}

    def __len__(self) -> int:
        return len(self._deadlines)

    def add(self, event: ChangeEvent, now: float) -> None:
        self._deadlines[event.asset_class] = now + self.delay
        self._paths.setdefault(event.asset_class, set()).add(event.path)

    def due(self, now: float) -> list[tuple[AssetClass, list[Path]]]:
        """Pop every class whose deadline has passed, earliest first."""
        ready = sorted(
            (deadline, asset_class)
            for asset_class, deadline in self._deadlines.items()
            if deadline <= now
        )
        batches: list[tuple[AssetClass, list[Path]]] = []
        for _, asset_class in ready:
            del self._deadlines[asset_class]
            batches.append((asset_class, sorted(self._paths.pop(asset_class))))
        return batches

    def next_deadline(self) -> float | None:
        return min(self._deadlines.values(), default=None)


class _EventHandler(FileSystemEventHandler):
    """Translates watchdog events into ChangeEvents on the watcher's queue."""

    def __init__(self, watcher: Watcher) -> None:
        self.watcher = watcher

    def _submit(self, raw_path: bytes | str, kind: ChangeKind) -> None:
        path = Path(os.fsdecode(raw_path))
        asset_class = self.watcher.registry.classify(path)
        if asset_class is not None:
            self.watcher.submit(ChangeEvent(path, asset_class, kind))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path, ChangeKind.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._submit(event.src_path, ChangeKind.DELETED)
            self._submit(event.dest_path, ChangeKind.CREATED)


class Watcher:
    """Watches the source tree and rebuilds the affected asset class.

    A watchdog observer feeds a queue; one dispatch thread debounces the
    events and calls ``dispatch(asset_class, paths)`` for each settled
    class. Dispatches run one at a time, and a failing dispatch is reported
    without stopping the loop.
    """

    def __init__(
        self,
        registry: PathRegistry,
        dispatch: Dispatch,
        notifier: Notifier | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self.registry = registry
        self.dispatch = dispatch
        self.notifier = notifier
        self.debouncer = Debouncer(debounce)
        self._queue: Queue[ChangeEvent | None] = Queue()
        self._observer: Observer | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, event: ChangeEvent) -> None:
        """Queue a change event (called from observer threads)."""
        self._queue.put(event)

    def start(self, observe: bool = True) -> None:
        """Start the dispatch thread and, unless `observe` is False, the observer."""
        if self.running:
            return
        self._thread = threading.Thread(
            target=self._loop, name="assetflow-watcher", daemon=True
        )
        self._thread.start()

        if not observe:
            return
        observer = Observer()
        handler = _EventHandler(self)
        roots = [r for r in self.registry.watch_roots() if r.is_dir()]
        for root in roots:
            observer.schedule(handler, str(root), recursive=True)
            logger.debug("Watching %s", root)
        observer.start()
        self._observer = observer
        logger.info("Watching %d source root(s)", len(roots))

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the observer and the dispatch thread; pending events are dropped."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=timeout)
            self._observer = None
        if self._thread is not None:
            self._queue.put(None)
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Watcher stopped")

    def _loop(self) -> None:
        while True:
            deadline = self.debouncer.next_deadline()
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                event = self._queue.get(timeout=timeout)
            except Empty:
                pass
            else:
                if event is None:
                    return
                self.debouncer.add(event, time.monotonic())
            for asset_class, paths in self.debouncer.due(time.monotonic()):
                self._dispatch(asset_class, paths)

    def _dispatch(self, asset_class: AssetClass, paths: list[Path]) -> None:
        logger.info("Rebuilding %s (%d changed)", asset_class.value, len(paths))
        try:
            self.dispatch(asset_class, paths)
        except (AssetflowError, OSError) as e:
            if self.notifier is not None:
                self.notifier.notify_error(f"watch/{asset_class.value}", str(e))
            else:
                logger.error("Rebuild of %s failed: %s", asset_class.value, e)
        except Exception:
            # Keep watching; the traceback is the only useful report here
            logger.exception("Unexpected error rebuilding %s", asset_class.value)
