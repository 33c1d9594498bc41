"""Content renderers for Lantern.

The Renderer maps a source file extension to an ordered list of handlers.
Each handler receives its own clone of the loaded File and returns it with
`content` set, so one source can fan out into several outputs. Sources with no
handler, or listed in `skipRender`, are copied through unchanged.

Built-in handlers:
- Markdown (`.md` -> `.html`): mistune with Pygments syntax highlighting.
- HTML (`.html`): passthrough.
- Jinja (`.j2`, `.jinja`): compiled eagerly, evaluated during decoration.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

import mistune
from jinja2 import Environment
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import Deferred, File, Final, Site
from .logging import get_logger

logger = get_logger("renderers")

RenderFn = Callable[[File], "File | Future[File]"]


@dataclass(frozen=True)
class RenderHandler:
    """A registered render handler.

    Attributes:
        src_ext: Source extension including the dot.
        doc_ext: Output extension, or None to keep the source path.
        fn: Handler callable.
    """

    src_ext: str
    doc_ext: str | None
    fn: RenderFn


class Renderer:
    """Registry dispatching source files to render handlers by extension.

    Attributes:
        skip_render: Source paths that are copied through without rendering.
    """

    def __init__(self, skip_render: Iterable[str] | None = None):
        """Initialize an empty registry.

        Args:
            skip_render: Source paths (relative, posix) that must not be rendered.
        """
        self.skip_render = set(skip_render or ())
        self._handlers: dict[str, list[RenderHandler]] = {}

    def register(self, src_ext: str, doc_ext: str | RenderFn | None = None, fn: RenderFn | None = None) -> None:
        """Register a render handler.

        Args:
            src_ext: Source extension starting with `.`.
            doc_ext: Output extension starting with `.`; omitted keeps the path.
                A callable passed here with no `fn` is taken as the handler.
            fn: Handler receiving a File clone and returning the rendered File.

        Raises:
            TypeError: If no callable handler is given.
        """
        if callable(doc_ext) and fn is None:
            fn, doc_ext = doc_ext, None
        if not callable(fn):
            raise TypeError("fn must be callable")
        self._handlers.setdefault(src_ext, []).append(RenderHandler(src_ext, doc_ext, fn))

    def handlers(self, src_ext: str) -> list[RenderHandler]:
        return list(self._handlers.get(src_ext, ()))

    def render(self, input_file: File) -> list[File]:
        """Render a loaded File into one or more output Files.

        Args:
            input_file: File with raw/text and front matter populated.

        Returns:
            Rendered Files in handler registration order.
        """
        src_path = input_file.src_path or ""
        src_ext = posixpath.splitext(src_path)[1]
        handlers = self._handlers.get(src_ext)
        if not handlers or src_path in self.skip_render:
            output = input_file.clone(doc_path=src_path, content=Final(input_file.raw or b""))
            return [output]
        results: list[File] = []
        for handler in handlers:
            output = input_file.clone()
            if handler.doc_ext is not None:
                stem = posixpath.splitext(src_path)[0]
                output.doc_path = f"{stem}{handler.doc_ext}"
                logger.debug("Rendering `%s` to `%s`...", src_path, output.doc_path)
            else:
                output.doc_path = src_path
                logger.debug("Rendering `%s`...", src_path)
            result = handler.fn(output)
            if isinstance(result, Future):
                result = result.result()
            results.append(result)
        return results


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown HTML renderer with Pygments syntax highlighting.

    Attributes:
        options: `highlight` section of the site configuration.
    """

    def __init__(self, options: dict[str, Any] | None = None):
        super().__init__(escape=False)
        self.options = options or {}

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        lang = info.split()[0].lower() if info else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(
                    cssclass=self.options.get("cssclass", "highlight"),
                    linenos="table" if self.options.get("linenos") else False,
                )
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


def markdown_handler(options: dict[str, Any] | None = None) -> RenderFn:
    """Build the Markdown render handler."""

    def render_markdown(file: File) -> File:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(options),
            plugins=["strikethrough", "footnotes", "table", "url"],
        )
        file.content = Final(markdown(file.text or ""))
        return file

    return render_markdown


def html_handler(file: File) -> File:
    """Pass HTML text through."""
    file.content = Final(file.text or "")
    return file


def jinja_handler(env: Environment) -> RenderFn:
    """Build the Jinja template handler.

    The template is parsed now, so syntax errors surface while loading; it is
    evaluated later, when the complete site context is available.
    """

    def render_template(file: File) -> File:
        template = env.from_string(file.text or "")
        file.content = Deferred(template.render)
        return file

    return render_template


def register_builtin_renderers(renderer: Renderer, site: Site, env: Environment) -> None:
    """Register the built-in render handlers.

    Args:
        renderer: Registry to populate.
        site: Site whose configuration parametrizes the handlers.
        env: Jinja2 environment for template sources.
    """
    template = jinja_handler(env)
    renderer.register(".j2", None, template)
    renderer.register(".jinja", None, template)
    renderer.register(".html", ".html", html_handler)
    renderer.register(".md", ".html", markdown_handler(site.site_config.get("highlight")))
