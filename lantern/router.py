"""Routing and orchestration for Lantern.

The Router owns the Site for one run. It discovers source files, loads them
through the Renderer, runs the Processor and Generator ("handle pass"), and
then either writes every output File to disk or indexes them into an
in-memory route table for the development server.

In serve mode the Router also drains filesystem events: events are coalesced
per source file, applied in one batch, and followed by exactly one handle
pass. Only the drain worker mutates the Site; HTTP threads read the route
table, which is replaced as a whole at the end of each pass.

Key items:
- Router: Discovery, load, handle, output and the event queue.
- DEFAULT_404: Body served when the site has no 404.html.
"""

from __future__ import annotations

import shutil
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote
from zoneinfo import ZoneInfo

from . import __version__
from .content import FILE, File, Final, Site, classify
from .errors import BuildError, LanternError, format_error_message
from .extractors import is_binary, parse_front_matter
from .generators import Generator
from .html_utils import get_path_fn, get_url_fn, is_current_path_fn
from .logging import get_logger
from .processors import Processor
from .renderers import Renderer
from .templates import Decorator, render_toc
from .translator import Translator

logger = get_logger("router")

ADD = "add"
CHANGE = "change"
UNLINK = "unlink"

DEFAULT_404 = (
    "<!DOCTYPE html>\n"
    "<html><head><meta charset=\"utf-8\"><title>404 Not Found</title></head>\n"
    "<body><h1>404 Not Found</h1></body></html>\n"
)

Listener = Callable[[Site], None]


def is_hidden(src_path: str) -> bool:
    """Return True when any segment of a relative path is a dotfile."""
    return any(part.startswith(".") for part in src_path.split("/"))


def format_date(value: datetime | None, fmt: str = "%Y-%m-%d", zone: str | None = None) -> str:
    """Format a datetime for templates, optionally converted to a time zone."""
    if value is None:
        return ""
    if zone:
        value = value.astimezone(ZoneInfo(zone))
    return value.strftime(fmt)


def get_version() -> str:
    return __version__


class Router:
    """Drives the pipeline for one Site.

    Attributes:
        site: The Site being built or served.
        renderer: Source extension dispatch.
        processor: Ordered site-wide steps.
        generator: Ordered page generators.
        decorator: Layout wrapping of final content.
        translator: Language lookup for templates.
        handling: True while a watch-driven handle pass runs.
    """

    def __init__(
        self,
        site: Site,
        renderer: Renderer,
        processor: Processor,
        generator: Generator,
        decorator: Decorator,
        translator: Translator,
        max_workers: int | None = None,
    ):
        self.site = site
        self.renderer = renderer
        self.processor = processor
        self.generator = generator
        self.decorator = decorator
        self.translator = translator
        self.max_workers = max_workers

        config = site.site_config
        self.get_path = get_path_fn(config.get("rootDir"))
        self.get_url = get_url_fn(config.get("baseURL"), config.get("rootDir"))

        self.handling = False
        self._routes: dict[str, File] = {}
        self._events: dict[tuple[Path, str], str] = {}
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._worker: threading.Thread | None = None
        self._listeners: list[Listener] = []

    # Discovery and load

    @property
    def source_dirs(self) -> list[Path]:
        """Source roots in discovery order: theme sources, then site sources."""
        config = self.site.site_config
        return [Path(config["themeSrcDir"]), Path(config["srcDir"])]

    @property
    def theme_src_dir(self) -> Path:
        return Path(self.site.site_config["themeSrcDir"])

    def match_all(self) -> list[File]:
        """Enumerate every source file as a stub File.

        Theme sources come first and skip dotfiles; site sources keep them.
        """
        stubs: list[File] = []
        for src_dir in self.source_dirs:
            include_hidden = src_dir != self.theme_src_dir
            for src_path in _list_files(src_dir):
                if not include_hidden and is_hidden(src_path):
                    continue
                stubs.append(self._stub(src_dir, src_path))
        return stubs

    def _stub(self, src_dir: Path, src_path: str) -> File:
        return File(doc_dir=Path(self.site.site_config["docDir"]), src_dir=src_dir, src_path=src_path)

    def read_file(self, file: File) -> list[File]:
        """Read, parse and render one source file.

        Args:
            file: Stub File with src_dir and src_path set.

        Returns:
            Classified render results.

        Raises:
            BuildError: If reading, front matter parsing or rendering fails.
        """
        path = Path(file.src_dir) / file.src_path
        logger.debug("Loading `%s`...", path)
        try:
            file.raw = path.read_bytes()
            file.is_binary = is_binary(file.raw)
            if file.is_binary:
                results = [file.clone(doc_path=file.src_path, content=Final(file.raw))]
            else:
                file.text = file.raw.decode("utf-8-sig", errors="replace")
                parse_front_matter(file, zone=self.site.site_config.get("timezone"))
                results = self.renderer.render(file)
        except BuildError:
            raise
        except Exception as exc:
            raise BuildError(path, format_error_message(exc), exc) from exc
        return [classify(result) for result in results]

    def load_file(self, file: File) -> list[File]:
        """Load one source file and upsert its results into the Site."""
        results = self.read_file(file)
        self.site.replace_source(file.src_dir, file.src_path, results)
        return results

    def load_all(self) -> None:
        """Load every source file.

        Files are read concurrently; results are merged in discovery order
        once all reads completed.
        """
        stubs = self.match_all()
        logger.debug("Found %d source files", len(stubs))
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            loaded = list(pool.map(self.read_file, stubs))
        for stub, results in zip(stubs, loaded):
            self.site.replace_source(stub.src_dir, stub.src_path, results)

    def handle(self) -> None:
        """Run one handle pass: all processor steps, then all generators."""
        self.site = self.processor.process(self.site)
        self.site.files = self.generator.generate(self.site)

    # Decorate and output

    def load_context(self, file: File) -> dict[str, Any]:
        """Build the read-only template context of a File."""
        config = self.site.site_config
        language = file.language or config.get("language")
        return {
            "site": self.site,
            "site_config": config,
            "theme_config": self.site.theme_config,
            "page": file,
            "now": datetime.now().astimezone(),
            "format_date": format_date,
            "get_version": get_version,
            "get_url": self.get_url,
            "get_path": self.get_path,
            "is_current_path": is_current_path_fn(config.get("rootDir"), file.doc_path),
            "is_list": lambda value: isinstance(value, (list, tuple)),
            "is_str": lambda value: isinstance(value, str),
            "is_callable": callable,
            "is_mapping": lambda value: isinstance(value, Mapping),
            "render_toc": render_toc,
            "__": self.translator.get_translate_fn(language),
        }

    def decorate(self, file: File) -> str | bytes:
        return self.decorator.decorate(file, self.load_context(file))

    def write(self, file: File, content: str | bytes | None = None) -> Path:
        """Write a File to `doc_dir/doc_path`.

        Binary sources are copied byte for byte; other content is written as
        given (str as UTF-8).

        Raises:
            BuildError: If the output path resolves outside doc_dir.
        """
        doc_dir = Path(file.doc_dir or self.site.site_config["docDir"]).resolve()
        dest = (doc_dir / file.doc_path).resolve()
        if not dest.is_relative_to(doc_dir) or dest == doc_dir:
            raise BuildError(Path(file.doc_path), f"Output path escapes {doc_dir}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        if file.is_binary and file.src_dir is not None:
            shutil.copyfile(Path(file.src_dir) / file.src_path, dest)
        elif isinstance(content, bytes):
            dest.write_bytes(content)
        else:
            dest.write_text(content or "", encoding="utf-8")
        return dest

    def save_file(self, file: File) -> Path:
        """Decorate and write one File.

        Raises:
            BuildError: If decoration or writing fails.
        """
        source = Path(file.src_dir) / file.src_path if file.src_dir is not None else Path(file.doc_path)
        try:
            content = None if file.is_binary else self.decorate(file)
            dest = self.write(file, content)
        except LanternError:
            raise
        except Exception as exc:
            raise BuildError(source, format_error_message(exc), exc) from exc
        logger.debug("Wrote `%s`", dest)
        return dest

    def build(self) -> None:
        """Load, handle and write the whole site to docDir."""
        self.load_all()
        self.handle()
        files = self.site.all_files()
        for file in files:
            self.save_file(file)
        logger.info("Built %d files into %s", len(files), self.site.site_config["docDir"])

    # Serving

    def build_server_routes(self, files: list[File]) -> None:
        """Index Files by URL path and publish the table atomically."""
        routes: dict[str, File] = {}
        for file in files:
            key = self.get_path(file.doc_path)
            logger.debug("Serving `%s`...", key)
            routes[key] = file
        self._routes = routes

    @property
    def routes(self) -> dict[str, File]:
        return self._routes

    def lookup(self, url: str) -> tuple[int, File]:
        """Resolve a request URL against the route table.

        Args:
            url: Request target, possibly with query string or fragment.

        Returns:
            Tuple of (HTTP status, File to decorate).
        """
        routes = self._routes
        path = url.split("?", 1)[0].split("#", 1)[0] or "/"
        key = quote(unquote(path))
        candidates = [key]
        if key.endswith("/index.html"):
            candidates.append(key[: -len("index.html")])
        elif not key.endswith("/"):
            candidates.append(f"{key}/")
        for candidate in candidates:
            file = routes.get(candidate)
            if file is not None:
                return 200, file
        fallback = routes.get(self.get_path("404.html"))
        if fallback is None:
            fallback = File(doc_path="404.html", type=FILE, content=Final(DEFAULT_404))
        return 404, fallback

    def prepare_serve(self) -> None:
        """Load and handle the site, then publish the first route table."""
        self.load_all()
        self.handle()
        self.build_server_routes(self.site.all_files())
        logger.info("Indexed %d routes", len(self._routes))

    # Incremental events

    def add_listener(self, callback: Listener) -> None:
        """Call `callback(site)` after every successful watch-driven pass."""
        self._listeners.append(callback)

    def enqueue_event(self, event: str, src_dir: Path, src_path: str) -> None:
        """Queue a filesystem event, keeping only the latest per source file.

        Args:
            event: One of `add`, `change` or `unlink`.
            src_dir: Source root the file belongs to.
            src_path: Path relative to src_dir.
        """
        if event not in (ADD, CHANGE, UNLINK):
            raise ValueError(f"Unknown event: {event}")
        logger.debug("Watched event `%s` from `%s`", event, Path(src_dir) / src_path)
        with self._lock:
            self._events[(Path(src_dir), src_path)] = event
        self._wake.set()

    @property
    def pending_events(self) -> int:
        with self._lock:
            return len(self._events)

    def handle_events(self) -> int:
        """Drain queued events, one handle pass per drained batch.

        Returns immediately when a pass is already running or nothing is
        queued. Events arriving during a pass are batched into the next one.

        Returns:
            Number of passes run.
        """
        with self._lock:
            if self.handling or not self._events:
                return 0
            self.handling = True
        passes = 0
        try:
            while True:
                with self._lock:
                    if not self._events:
                        return passes
                    events, self._events = self._events, {}
                self._run_pass(events)
                passes += 1
        finally:
            with self._lock:
                self.handling = False

    def _run_pass(self, events: dict[tuple[Path, str], str]) -> None:
        failed = 0
        for (src_dir, src_path), event in events.items():
            try:
                self._apply_event(event, src_dir, src_path)
            except BuildError as exc:
                failed += 1
                logger.error("Failed to load: %s: %s", exc.source_path, exc.message)
                logger.debug("Load failure", exc_info=True)
        if failed:
            logger.error("Skipped rebuild: %d of %d changed files failed to load", failed, len(events))
            return
        try:
            self.handle()
            self.build_server_routes(self.site.all_files())
        except Exception as exc:
            if isinstance(exc, BuildError):
                logger.error("Failed to rebuild: %s: %s", exc.source_path, exc.message)
            else:
                logger.error("Failed to rebuild: %s", format_error_message(exc))
            logger.debug("Rebuild failure", exc_info=True)
            return
        logger.info("Rebuilt %d changed files", len(events))
        for listener in list(self._listeners):
            try:
                listener(self.site)
            except Exception:
                logger.exception("Listener failed")

    def _apply_event(self, event: str, src_dir: Path, src_path: str) -> None:
        if event != UNLINK:
            try:
                self.load_file(self._stub(src_dir, src_path))
                return
            except BuildError as exc:
                if not isinstance(exc.original_error, FileNotFoundError):
                    raise
                # Deleted before the queue was drained.
        logger.debug("Removing `%s`...", src_dir / src_path)
        self.site.remove_source(src_dir, src_path)

    def start_worker(self) -> None:
        """Start the daemon thread that drains events when woken."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stopping.clear()
        self._worker = threading.Thread(target=self._drain_loop, name="lantern-drain", daemon=True)
        self._worker.start()

    def stop_worker(self, timeout: float | None = None) -> None:
        self._stopping.set()
        self._wake.set()
        if self._worker is not None:
            self._worker.join(timeout)
            self._worker = None

    def _drain_loop(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait()
            self._wake.clear()
            if self._stopping.is_set():
                break
            self.handle_events()


def _list_files(root: Path) -> list[str]:
    if not root.is_dir():
        return []
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())
