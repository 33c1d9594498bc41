"""HTML utility functions for Lantern.

This module provides URL helpers bound to the configured site root and the
DOM passes used by the TOC and link resolving processor step. HTML is parsed
with BeautifulSoup's built-in `html.parser`.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    get_path_fn: Build a doc path -> root-relative URL path function.
    get_url_fn: Build a doc path -> absolute URL function.
    is_current_path_fn: Build a "is this the current page" predicate.
    resolve_header_ids: Give every heading a stable unique id.
    gen_toc: Build a TOC tree from heading nesting.
    resolve_links: Rewrite relative links to root-relative paths.
    resolve_images: Rewrite relative image sources to root-relative paths.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Callable
from urllib.parse import quote, unquote, urlsplit

from bs4 import BeautifulSoup

from .content import TOC

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

# URL prefixes that should not be rewritten
_URL_SKIP_PREFIXES = (
    "#",
    "//",
    "mailto:",
    "tel:",
    "javascript:",
    "data:",
)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('Tom & Jerry')
        'Tom &amp; Jerry'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def get_path_fn(root_dir: str | None = "/") -> Callable[..., str]:
    """Build a function mapping a doc path to a root-relative URL path.

    A trailing `index.html` is dropped so directory URLs stay clean.

    Examples:
        >>> get_path_fn("/blog")("tags/index.html")
        '/blog/tags/'
    """
    root = posixpath.join("/", (root_dir or "/").replace("\\", "/"))

    def get_path(doc_path: str = "") -> str:
        path = str(doc_path or "").replace("\\", "/").lstrip("/")
        if path.endswith("index.html"):
            path = path[: -len("index.html")]
        return quote(posixpath.join(root, path))

    return get_path


def get_url_fn(base_url: str | None, root_dir: str | None = "/") -> Callable[..., str]:
    """Build a function mapping a doc path to an absolute URL."""
    get_path = get_path_fn(root_dir)

    def get_url(doc_path: str = "") -> str:
        return join_root_url(base_url or "", get_path(doc_path))

    return get_url


def is_current_path_fn(root_dir: str | None, current_doc_path: str | None) -> Callable[..., bool]:
    """Build a predicate telling whether a path is the current page.

    Non-strict checks match any ancestor path, except the site root which
    only matches itself.
    """
    get_path = get_path_fn(root_dir)
    current = get_path(current_doc_path or "")
    root = get_path("")

    def is_current_path(test_path: str = "", strict: bool = False) -> bool:
        test = get_path(test_path)
        if strict or test == root:
            return current == test
        return current.startswith(test)

    return is_current_path


def generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


def resolve_header_ids(soup: BeautifulSoup) -> None:
    """Assign unique ids to headings, keeping ids already present."""
    seen: dict[str, int] = {}
    for heading in soup.find_all(HEADING_TAGS):
        if heading.get("id"):
            seen.setdefault(heading["id"], 0)
    for heading in soup.find_all(HEADING_TAGS):
        if heading.get("id"):
            continue
        base_id = generate_heading_id(heading.get_text())
        if base_id in seen:
            seen[base_id] += 1
            heading_id = f"{base_id}-{seen[base_id]}"
        else:
            seen[base_id] = 0
            heading_id = base_id
        heading["id"] = heading_id


def gen_toc(soup: BeautifulSoup) -> list[TOC]:
    """Build a TOC tree from the document's headings.

    A heading nests under the closest previous heading of a smaller level.
    """
    roots: list[TOC] = []
    stack: list[tuple[int, TOC]] = []
    for heading in soup.find_all(HEADING_TAGS):
        level = int(heading.name[1])
        node = TOC(heading.name, heading.get("id", ""), heading.get_text().strip())
        while stack and stack[-1][0] >= level:
            stack.pop()
        if stack:
            stack[-1][1].subs.append(node)
        else:
            roots.append(node)
        stack.append((level, node))
    return roots


def resolve_links(soup: BeautifulSoup, base_url: str | None, root_dir: str | None, doc_path: str) -> None:
    """Rewrite anchors for a document rendered at `doc_path`.

    Relative hrefs become root-relative. Links pointing to another host get
    `target="_blank"` and `rel="noopener noreferrer"`.
    """
    site_host = urlsplit(base_url or "").netloc
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if _is_external(href):
            if urlsplit(href).netloc not in ("", site_host):
                anchor["target"] = "_blank"
                anchor["rel"] = "noopener noreferrer"
            continue
        anchor["href"] = resolve_relative(href, root_dir, doc_path)


def resolve_images(soup: BeautifulSoup, root_dir: str | None, doc_path: str) -> None:
    """Rewrite relative image sources for a document rendered at `doc_path`."""
    for image in soup.find_all("img", src=True):
        src = image["src"].strip()
        if _is_external(src):
            continue
        image["src"] = resolve_relative(src, root_dir, doc_path)


def resolve_relative(url: str, root_dir: str | None, doc_path: str) -> str:
    """Resolve a relative URL against a doc path into a root-relative path.

    Root-relative URLs, fragments and URLs with a scheme are returned unchanged.

    Examples:
        >>> resolve_relative("../img/a.png", "/", "posts/hello/index.html")
        '/posts/img/a.png'
    """
    if not url or url.startswith("/") or url.startswith(_URL_SKIP_PREFIXES) or _SCHEME_RE.match(url):
        return url
    parts = urlsplit(url)
    base_dir = posixpath.dirname((doc_path or "").replace("\\", "/"))
    joined = posixpath.normpath(posixpath.join(base_dir, unquote(parts.path)))
    if joined in (".", ".."):
        joined = ""
    joined = re.sub(r"^(?:\.\./)+", "", joined)
    resolved = get_path_fn(root_dir)(joined)
    if parts.path.endswith("/") and not resolved.endswith("/"):
        resolved += "/"
    if parts.query:
        resolved += f"?{parts.query}"
    if parts.fragment:
        resolved += f"#{parts.fragment}"
    return resolved


def _is_external(url: str) -> bool:
    return url.startswith(_URL_SKIP_PREFIXES) or bool(_SCHEME_RE.match(url))
