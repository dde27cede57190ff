"""The default task set: clean, per-class builds, server, watcher, service worker."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path, PurePosixPath
from threading import Lock

from assetflow.config.schema import AssetClass, BuildMode
from assetflow.console import console
from assetflow.context import BuildContext
from assetflow.errors import BuildError
from assetflow.pipelines import Pipeline, PipelineResult, build_pipeline
from assetflow.serviceworker import generate_service_worker
from assetflow.server import DevServer
from assetflow.tasks.base import Task
from assetflow.tasks.scheduler import Scheduler
from assetflow.watcher import Watcher

logger = logging.getLogger(__name__)

# Submission order for parallel groups
ASSET_ORDER: tuple[AssetClass, ...] = (
    AssetClass.SCSS,
    AssetClass.FONTS,
    AssetClass.IMG,
    AssetClass.HTML,
    AssetClass.JS,
    AssetClass.MANIFEST,
)


_PRECACHE_PATTERNS = {
    AssetClass.HTML: "**/*.html",
    AssetClass.SCSS: "*.min*.css",
    AssetClass.FONTS: "**/*",
    AssetClass.IMG: "**/*",
    AssetClass.JS: "*.min*.js",
}


def precache_globs(context: BuildContext) -> list[str]:
    """Service worker precache patterns, relative to the destination root."""
    globs = []
    for asset_class in ASSET_ORDER:
        if asset_class is AssetClass.MANIFEST:
            # The web app manifest only, not the revision manifest beside it
            source_glob = context.registry.resolve(asset_class).source_glob
            pattern = PurePosixPath(source_glob).name
        else:
            pattern = _PRECACHE_PATTERNS[asset_class]
        globs.append(context.url_for(asset_class, PurePosixPath(pattern)))
    return globs


class BuildSession:
    """Long-lived objects behind the default tasks.

    Pipelines are created once per (class, mode) and shared by the initial
    build and the watcher, so their runs are serialized.
    """

    def __init__(self, context: BuildContext) -> None:
        self.context = context
        self.server: DevServer | None = None
        self.watcher: Watcher | None = None
        self._pipelines: dict[tuple[AssetClass, BuildMode], Pipeline] = {}
        self._lock = Lock()

    def pipeline(self, asset_class: AssetClass, mode: BuildMode) -> Pipeline:
        with self._lock:
            key = (asset_class, mode)
            if key not in self._pipelines:
                self._pipelines[key] = build_pipeline(asset_class, mode, self.context)
            return self._pipelines[key]

    def build(
        self,
        asset_class: AssetClass,
        mode: BuildMode,
        changed: list[Path] | None = None,
    ) -> PipelineResult:
        """Run one pipeline; raises BuildError if any file failed."""
        result = self.pipeline(asset_class, mode).run(changed)
        if not result.success:
            raise BuildError(
                f"{mode.prefix}:{asset_class.value}: {len(result.errors)} file(s) failed"
            )
        return result

    def clean_dist(self) -> None:
        dest_root = self.context.dest_root
        if dest_root.exists():
            shutil.rmtree(dest_root)
            logger.info("Removed %s", dest_root)
        self.context.revisions.clear()

    def clean_cache(self) -> None:
        self.context.image_cache.clear()

    def serve(self) -> None:
        if self.server is not None:
            return
        server_config = self.context.config.server
        server = DevServer(
            self.context.dest_root,
            host=server_config.host or "localhost",
            port=server_config.port if server_config.port is not None else 3000,
            log_prefix=server_config.log_prefix or "DevServer",
        )
        server.start()
        self.context.notifier.attach(server)
        self.server = server

    def watch(self) -> None:
        if self.watcher is not None:
            return
        watcher = Watcher(
            self.context.registry,
            self._rebuild,
            notifier=self.context.notifier,
            debounce=self.context.option("debounce"),
        )
        watcher.start()
        self.watcher = watcher

    def _rebuild(self, asset_class: AssetClass, paths: list[Path]) -> None:
        # Per-file errors were already reported by the pipeline
        self.pipeline(asset_class, BuildMode.DEVELOPMENT).run(paths)

    def service_worker(self) -> None:
        entries = generate_service_worker(
            self.context.dest_root, precache_globs(self.context)
        )
        console.print(f"[green]✓[/green] Service worker precaches {len(entries)} file(s)")

    def stop(self) -> None:
        """Stop the watcher and server if they were started."""
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        if self.server is not None:
            self.context.notifier.detach(self.server)
            self.server.stop()
            self.server = None


def _pipeline_task(
    session: BuildSession,
    asset_class: AssetClass,
    mode: BuildMode,
    dependencies: tuple[str, ...] = (),
) -> Task:
    def action() -> None:
        session.build(asset_class, mode)

    return Task(
        name=f"{mode.prefix}:{asset_class.value}",
        dependencies=dependencies,
        action=action,
        description=f"Build {asset_class.value} ({mode.value})",
    )


def build_scheduler(session: BuildSession) -> Scheduler:
    """Register the default task set."""
    scheduler = Scheduler(max_workers=session.context.option("max_workers"))

    scheduler.register(
        Task("clean:dist", action=session.clean_dist, description="Remove the destination")
    )
    scheduler.register(
        Task("clean:cache", action=session.clean_cache, description="Clear the image cache")
    )

    for mode in BuildMode:
        for asset_class in ASSET_ORDER:
            dependencies: tuple[str, ...] = ()
            if mode is BuildMode.PRODUCTION and asset_class is AssetClass.HTML:
                # Critical CSS and reference rewriting read the built CSS and JS
                dependencies = ("prod:scss", "prod:js")
            scheduler.register(_pipeline_task(session, asset_class, mode, dependencies))
        scheduler.register(
            Task(
                f"{mode.prefix}:assets",
                dependencies=tuple(f"{mode.prefix}:{c.value}" for c in ASSET_ORDER),
                parallel=True,
                description=f"Build all asset classes ({mode.value})",
            )
        )

    scheduler.register(
        Task("dev:serve", action=session.serve, description="Start the dev server")
    )
    scheduler.register(
        Task("dev:watch", action=session.watch, description="Rebuild on source changes")
    )
    scheduler.register(
        Task(
            "prod:sw",
            dependencies=("prod:assets",),
            action=session.service_worker,
            description="Generate the service worker",
        )
    )

    scheduler.register(
        Task(
            "clean",
            dependencies=("clean:dist", "clean:cache"),
            description="Remove the destination and clear the image cache",
        )
    )
    scheduler.register(
        Task(
            "build:dev",
            dependencies=(
                "clean:dist",
                "clean:cache",
                "dev:assets",
                "dev:serve",
                "dev:watch",
            ),
            description="Development build, server and watcher",
        )
    )
    scheduler.register(
        Task(
            "build:prod",
            dependencies=("prod:assets", "prod:sw"),
            description="Production build with service worker",
        )
    )
    return scheduler
