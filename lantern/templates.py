"""Template handling for Lantern.

This module uses Jinja2 both for template sources (rendered into deferred
content) and for theme layouts that wrap a page's body during decoration.

Key items:
- create_environment: Builds the shared Jinja2 environment for a site.
- Decorator: Resolves a File's content and wraps it in its layout.
- render_toc: Renders a File's TOC tree as nested HTML for templates.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound
from markupsafe import Markup

from .content import TOC, File, resolve_content
from .html_utils import escape_html
from .logging import get_logger

__all__ = ["Decorator", "create_environment", "render_toc"]

logger = get_logger("templates")

LAYOUT_SUFFIXES = (".j2", ".jinja", ".html")


def create_environment(site_config: Mapping[str, Any]) -> Environment:
    """Create the Jinja2 environment shared by templates and layouts.

    Templates can include or extend files from the theme layouts directory, the
    theme source directory and the site source directory, in that order.

    Args:
        site_config: Site configuration with resolved directories.

    Returns:
        Configured Jinja2 environment.
    """
    search_path = [
        Path(site_config["themeDir"]) / "layouts",
        Path(site_config["themeSrcDir"]),
        Path(site_config["srcDir"]),
    ]
    options = {"autoescape": False, "keep_trailing_newline": True}
    options.update(site_config.get("jinja") or {})
    env = Environment(loader=FileSystemLoader([str(p) for p in search_path]), **options)
    env.globals["render_toc"] = render_toc
    return env


def render_toc(page: File | list[TOC]) -> Markup:
    """Render a table of contents as nested HTML.

    Generates `<ul><li><a href="#id">text</a><ul>...</ul></li></ul>` following
    the TOC tree.

    Args:
        page: File carrying a toc, or a list of TOC nodes.

    Returns:
        Markup-safe HTML string of the nested TOC, or empty Markup if empty.
    """
    nodes = page.toc if isinstance(page, File) else page
    if not nodes:
        return Markup("")
    return Markup(_render_toc_nodes(nodes))


def _render_toc_nodes(nodes: list[TOC]) -> str:
    parts = ["<ul>"]
    for node in nodes:
        parts.append(f'<li><a href="#{escape_html(node.anchor)}">{escape_html(node.text)}</a>')
        if node.subs:
            parts.append(_render_toc_nodes(node.subs))
        parts.append("</li>")
    parts.append("</ul>")
    return "".join(parts)


class Decorator:
    """Turns a File into its final output.

    Decoration first resolves the File's own content (calling a deferred
    renderer with the page context), then, when the theme provides a layout
    template named after `file.layout`, renders that layout with the same
    context plus `page_content`. Decoration only reads site state.

    Attributes:
        env: Jinja2 environment used to look up layouts.
    """

    def __init__(self, env: Environment, layout_dir: Path):
        """Initialize the decorator.

        Args:
            env: Jinja2 environment whose loader can see the layouts directory.
            layout_dir: Theme directory holding layout templates.
        """
        self.env = env
        self.layout_dir = Path(layout_dir)
        self._templates: dict[str, Template] = {}

    def register(self, layout: str, template: Template) -> None:
        """Register an explicit template for a layout name."""
        self._templates[layout] = template

    def get_layout(self, layout: str | None) -> Template | None:
        """Return the layout template for a layout name, if the theme has one.

        Args:
            layout: Layout name from front matter or a generator.

        Returns:
            Jinja2 Template object, or None.
        """
        if not layout:
            return None
        if layout in self._templates:
            return self._templates[layout]
        for suffix in LAYOUT_SUFFIXES:
            name = f"{layout}{suffix}"
            if not (self.layout_dir / name).is_file():
                continue
            try:
                return self.env.get_template(name)
            except TemplateNotFound:
                continue
        return None

    def decorate(self, file: File, context: Mapping[str, Any]) -> str | bytes:
        """Produce the final output of a File.

        Args:
            file: File to decorate.
            context: Page context built by the router.

        Returns:
            Final string, or bytes for copied-through content.
        """
        body = resolve_content(file.content, context)
        if isinstance(body, bytes):
            return body
        template = self.get_layout(file.layout)
        if template is None:
            return body
        logger.debug("Decorating `%s` with layout `%s`...", file.doc_path, file.layout)
        return template.render({**context, "page_content": Markup(body)})
