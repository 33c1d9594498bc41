"""Development server for Lantern.

Serves the site from the Router's in-memory route table, decorating each
file on request:
- Answers GET requests with 200, 404 (the site's 404.html when present) or
  500 when decoration fails.
- Watches the theme and site source folders and queues add/change/unlink
  events for incremental rebuilds.
- Optionally injects a reload script and notifies browsers over a websocket
  after each rebuild.

Key classes:
- DevServer: Main class for running the development server.
- _RouteHandler: HTTP request handler backed by the route table.
- _ChangeHandler: File system event handler queueing router events.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .content import Site
from .logging import get_logger
from .router import ADD, CHANGE, UNLINK, Router, is_hidden

logger = get_logger("server")

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""


def content_type(doc_path: str) -> str:
    """Return the Content-Type header value for an output path."""
    guessed, _ = mimetypes.guess_type(doc_path or "")
    if guessed is None:
        return "application/octet-stream"
    if guessed.startswith("text/") or guessed in ("application/javascript", "application/json", "application/xml"):
        return f"{guessed}; charset=utf-8"
    return guessed


def inject_script(content: str, script: str) -> str:
    if "</body>" in content:
        return content.replace("</body>", f"{script}</body>")
    return content + script


class _RouteHandler(BaseHTTPRequestHandler):
    """HTTP request handler answering from a Router's route table.

    Attributes:
        router: Router holding the route table.
        reload_script: Script injected into HTML responses, or None.
    """

    router: Router
    reload_script: str | None = None

    def do_GET(self):
        status, file = self.router.lookup(self.path)
        try:
            body = self.router.decorate(file)
        except Exception:
            logger.exception("Failed to decorate `%s`", file.doc_path)
            self.send_error(500, "Internal Server Error")
            return
        ctype = content_type(file.doc_path)
        if isinstance(body, str):
            if self.reload_script and ctype.startswith("text/html"):
                body = inject_script(body, self.reload_script)
            body = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", ctype)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


class _ChangeHandler(FileSystemEventHandler):
    """Translates watchdog events of one source root into router events."""

    def __init__(self, router: Router, src_dir: Path):
        super().__init__()
        self.router = router
        self.src_dir = Path(src_dir)
        self.skip_hidden = self.src_dir == router.theme_src_dir

    def on_any_event(self, event):
        if event.is_directory:
            return
        try:
            if event.event_type == "created":
                self._queue(ADD, event.src_path)
            elif event.event_type == "modified":
                self._queue(CHANGE, event.src_path)
            elif event.event_type == "deleted":
                self._queue(UNLINK, event.src_path)
            elif event.event_type == "moved":
                self._queue(UNLINK, event.src_path)
                self._queue(ADD, event.dest_path)
        except Exception:
            logger.exception("Dropped watcher event for `%s`", event.src_path)

    def _queue(self, kind: str, path) -> None:
        path = Path(path)
        try:
            src_path = path.relative_to(self.src_dir).as_posix()
        except ValueError:
            # Moved out of the watched root.
            return
        if self.skip_hidden and is_hidden(src_path):
            return
        self.router.enqueue_event(kind, self.src_dir, src_path)


class DevServer:
    """Development server with incremental rebuilds.

    Attributes:
        router: Router with a prepared route table.
        ip: Interface to bind.
        port: Port for HTTP server.
        ws_port: Port for WebSocket connections.
        live_reload: Whether browsers are notified after rebuilds.
    """

    def __init__(
        self,
        router: Router,
        ip: str = "localhost",
        port: int = 2333,
        ws_port: int | None = None,
        live_reload: bool = False,
    ):
        self.router = router
        self.ip = ip
        self.port = port
        self.ws_port = ws_port if ws_port is not None else port + 1
        self.live_reload = live_reload
        self._httpd: ThreadingHTTPServer | None = None
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()

    def make_handler(self) -> type[_RouteHandler]:
        script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port) if self.live_reload else None
        return type(
            "_RouteHandlerForSite",
            (_RouteHandler,),
            {"router": self.router, "reload_script": script},
        )

    def start(self) -> None:  # pragma: no cover - integration path
        self._httpd = ThreadingHTTPServer((self.ip, self.port), self.make_handler())
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        if self.live_reload:
            self.router.add_listener(self._on_rebuilt)
            threading.Thread(target=self._start_ws, daemon=True).start()
        self.router.start_worker()
        self._start_watcher()
        logger.info("Listening on http://%s:%d%s", self.ip, self.port, self.router.get_path())
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        logger.info("Stopping server...")
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.router.stop_worker(timeout=5)
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_watcher(self) -> None:
        observer = Observer()
        for src_dir in self.router.source_dirs:
            if src_dir.is_dir():
                observer.schedule(_ChangeHandler(self.router, src_dir), str(src_dir), recursive=True)
                logger.debug("Watching `%s`", src_dir)
        observer.start()
        self._observer = observer

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.error("WebSocket server failed to start (port %d): %s", self.ws_port, exc)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, self.ip, self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _on_rebuilt(self, site: Site) -> None:
        self._broadcast_reload()

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)
