"""Development web server with live reload."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import (
    FileResponse,
    HTMLResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from starlette.routing import Route

from assetflow.console import console
from assetflow.errors import BuildError

logger = logging.getLogger(__name__)

LIVERELOAD_PATH = "/__livereload"
KEEPALIVE_SECONDS = 15.0

RELOAD_SCRIPT = (
    "<script>(function(){"
    f"var source=new EventSource('{LIVERELOAD_PATH}');"
    "source.addEventListener('reload',function(){window.location.reload();});"
    "})();</script>"
)

_NO_CACHE = {"Cache-Control": "no-cache"}


def inject_reload_script(html: str) -> str:
    """Insert the live-reload client before ``</body>`` (or append it)."""
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + RELOAD_SCRIPT
    return html[:index] + RELOAD_SCRIPT + html[index:]


def resolve_request_path(root: Path, url_path: str) -> Path | None:
    """Map a URL path to a file under `root`; None if missing or outside it."""
    root = root.resolve()
    candidate = (root / url_path.lstrip("/")).resolve()
    if not candidate.is_relative_to(root):
        return None
    if candidate.is_dir():
        candidate = candidate / "index.html"
    return candidate if candidate.is_file() else None


class LiveReloadHub:
    """Fan-out of reload events to connected browsers (server-sent events).

    Client queues live on the server's event loop; ``broadcast`` may be
    called from any thread.
    """

    def __init__(self) -> None:
        self._clients: set[asyncio.Queue[str | None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def bind(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    def subscribe(self) -> asyncio.Queue[str | None]:
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._clients.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[str | None]) -> None:
        self._clients.discard(queue)

    def publish(self, event: str | None) -> None:
        """Deliver an event to every client; None closes the streams. Loop thread only."""
        for queue in list(self._clients):
            queue.put_nowait(event)

    def broadcast(self, event: str | None = "reload") -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Live reload skipped: server loop not running")
            return
        loop.call_soon_threadsafe(self.publish, event)


def create_app(root: Path, hub: LiveReloadHub) -> Starlette:
    """Build the Starlette app serving `root` with live reload."""

    async def livereload(request: Request) -> Response:
        queue = hub.subscribe()

        async def stream() -> AsyncIterator[str]:
            try:
                yield ": connected\n\n"
                while True:
                    try:
                        event = await asyncio.wait_for(queue.get(), KEEPALIVE_SECONDS)
                    except TimeoutError:
                        yield ": keepalive\n\n"
                        continue
                    if event is None:
                        return
                    yield f"event: {event}\ndata: {event}\n\n"
            finally:
                hub.unsubscribe(queue)

        return StreamingResponse(stream(), media_type="text/event-stream", headers=_NO_CACHE)

    async def serve_file(request: Request) -> Response:
        target = resolve_request_path(root, request.path_params["path"])
        if target is None:
            return PlainTextResponse("Not Found", status_code=404)
        if target.suffix.lower() in (".html", ".htm"):
            html = target.read_text(encoding="utf-8", errors="replace")
            return HTMLResponse(inject_reload_script(html), headers=_NO_CACHE)
        return FileResponse(target, headers=_NO_CACHE)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        hub.bind(asyncio.get_running_loop())
        try:
            yield
        finally:
            hub.bind(None)

    return Starlette(
        routes=[
            Route(LIVERELOAD_PATH, livereload),
            Route("/{path:path}", serve_file),
        ],
        lifespan=lifespan,
    )


class DevServer:
    """Serves the destination directory on a background thread.

    Runs uvicorn on its own asyncio loop in a daemon thread so the caller
    (the task scheduler) is never blocked.
    """

    def __init__(
        self,
        root: Path,
        host: str = "localhost",
        port: int = 3000,
        log_prefix: str = "DevServer",
    ) -> None:
        self.root = root
        self.host = host
        self.port = port
        self.log_prefix = log_prefix
        self.hub = LiveReloadHub()
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> int:
        """Start serving and return the bound port.

        Raises:
            BuildError: If the server does not come up (e.g. port in use).
        """
        config = uvicorn.Config(
            app=create_app(self.root, self.hub),
            host=self.host,
            port=self.port,
            log_level="warning",
            timeout_graceful_shutdown=2,
        )
        self._server = uvicorn.Server(config)

        self._thread = threading.Thread(
            target=asyncio.run,
            args=(self._server.serve(),),
            name="assetflow-server",
            daemon=True,
        )
        self._thread.start()

        self.port = self._wait_for_port()
        logger.info("%s started on %s", self.log_prefix, self.url)
        console.print(f"[cyan]\\[{self.log_prefix}][/cyan] Serving {self.root} at {self.url}")
        return self.port

    def _wait_for_port(self, timeout: float = 10.0) -> int:
        """Wait for uvicorn to bind and return the actual port."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._server and self._server.started:
                servers: Any = getattr(self._server, "servers", [])
                for srv in servers:
                    sockets = getattr(srv, "sockets", None)
                    if sockets:
                        addr: Any = sockets[0].getsockname()
                        return int(addr[1])
            if self._thread is not None and not self._thread.is_alive():
                break
            time.sleep(0.05)
        self.stop()
        raise BuildError(f"{self.log_prefix} failed to start on {self.host}:{self.port}")

    def broadcast_reload(self) -> None:
        """Tell connected browsers to reload. Safe to call from any thread."""
        logger.debug("Broadcasting reload to %d client(s)", self.hub.client_count)
        self.hub.broadcast("reload")

    def stop(self) -> None:
        """Close live-reload streams and shut the server down."""
        self.hub.broadcast(None)
        if self._server:
            self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        self._server = None
        logger.info("%s stopped", self.log_prefix)
