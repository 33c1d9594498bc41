"""Site-wide processing steps for Lantern.

A Processor runs named steps in registration order; each step receives the
Site returned by the previous one. Steps recompute every derived field from
source-derived data, so running the sequence after a partial reload yields the
same result as a fresh build.

Built-in steps (in order):
- post sequence: newest-first ordering and next/prev links.
- categories collection: nested category tree from post front matter.
- tags collection: flat tag list from post front matter.
- toc and link resolving: heading ids, TOC, root-relative links, excerpts.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup

from .content import Category, File, Final, Site, Tag
from .errors import ConfigError
from .html_utils import gen_toc, resolve_header_ids, resolve_images, resolve_links
from .logging import get_logger

logger = get_logger("processors")

ProcessFn = Callable[[Site], Site]

MORE_MARKER = "<!--more-->"
MORE_ANCHOR = '<a id="more"></a>'


@dataclass(frozen=True)
class ProcessStep:
    name: str
    fn: ProcessFn


class Processor:
    """Ordered registry of site-wide processing steps."""

    def __init__(self) -> None:
        self._steps: list[ProcessStep] = []

    def register(self, name: str, fn: ProcessFn) -> None:
        """Append a named step.

        Raises:
            TypeError: If fn is not callable.
        """
        if not callable(fn):
            raise TypeError("fn must be callable")
        self._steps.append(ProcessStep(name, fn))

    @property
    def names(self) -> list[str]:
        return [step.name for step in self._steps]

    def process(self, site: Site) -> Site:
        """Run every step in order.

        Args:
            site: Site with complete posts/pages/assets partitions.

        Returns:
            The Site returned by the last step.
        """
        for step in self._steps:
            logger.debug("Processing `%s`...", step.name)
            site = step.fn(site)
        return site


def sequence_posts(site: Site) -> Site:
    """Sort posts newest first and link chronological neighbors.

    `next` points to the newer post and `prev` to the older one.
    """
    posts = sorted(site.posts, key=lambda p: p.created_time, reverse=True)
    for index, post in enumerate(posts):
        post.next = posts[index - 1] if index > 0 else None
        post.prev = posts[index + 1] if index < len(posts) - 1 else None
    site.posts = posts
    return site


def category_path(value: Any) -> list[str]:
    """Normalize a front matter categories value into path segments.

    Examples:
        >>> category_path("a/b")
        ['a', 'b']
        >>> category_path(["a", "b/c"])
        ['a', 'b', 'c']
    """
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    segments: list[str] = []
    for item in items:
        segments.extend(part.strip() for part in str(item).split("/") if part.strip())
    return segments


def tag_names(value: Any) -> list[str]:
    """Normalize a front matter tags value into unique tag names."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    names: list[str] = []
    for item in items:
        name = str(item).strip()
        if name and name not in names:
            names.append(name)
    return names


def _check_name(kind: str, name: str, post: File) -> None:
    if name.startswith("/") or any(part in (".", "..") for part in name.split("/")):
        raise ConfigError(f"Invalid {kind} `{name}` in `{post.src_path}`")


def gen_categories(posts: Iterable[File], category_dir: str = "categories") -> tuple[list[Category], int]:
    """Build the category tree of a list of posts.

    Each post is appended to every node along its category path, and its
    `categories` field becomes that path.

    Args:
        posts: Posts in their final order.
        category_dir: Output directory of category pages.

    Returns:
        Tuple of (top-level categories, number of nodes).

    Raises:
        ConfigError: If a category name is `.` or `..`.
    """
    roots: list[Category] = []
    length = 0
    for post in posts:
        level = roots
        parent_path = category_dir
        path: list[Category] = []
        for name in category_path(post.front_matter.get("categories")):
            _check_name("category", name, post)
            node = next((c for c in level if c.name == name), None)
            if node is None:
                node = Category(name, doc_path=posixpath.join(parent_path, name, "index.html"))
                level.append(node)
                length += 1
            node.posts.append(post)
            path.append(node)
            parent_path = posixpath.join(parent_path, name)
            level = node.subs
        post.categories = path
    _sort_categories(roots)
    return roots, length


def _sort_categories(categories: list[Category]) -> None:
    categories.sort(key=lambda c: c.name)
    for category in categories:
        _sort_categories(category.subs)


def gen_tags(posts: Iterable[File], tag_dir: str = "tags") -> tuple[list[Tag], int]:
    """Build the tag list of a list of posts, sorted by name."""
    by_name: dict[str, Tag] = {}
    for post in posts:
        post_tags = []
        for name in tag_names(post.front_matter.get("tags")):
            _check_name("tag", name, post)
            tag = by_name.get(name)
            if tag is None:
                tag = by_name[name] = Tag(name, doc_path=posixpath.join(tag_dir, name, "index.html"))
            tag.posts.append(post)
            post_tags.append(tag)
        post.tags = post_tags
    tags = sorted(by_name.values(), key=lambda t: t.name)
    return tags, len(tags)


def collect_categories(site: Site) -> Site:
    site.categories, site.categories_length = gen_categories(
        site.posts, site.site_config.get("categoryDir", "categories")
    )
    return site


def collect_tags(site: Site) -> Site:
    site.tags, site.tags_length = gen_tags(site.posts, site.site_config.get("tagDir", "tags"))
    return site


def resolve_document(file: File, base_url: str | None, root_dir: str | None) -> None:
    """Resolve headings, TOC, links and excerpt of one rendered document.

    Only final string content is processed; deferred templates are resolved
    during decoration and carry no TOC.
    """
    if not isinstance(file.content, Final) or not isinstance(file.content.value, str):
        return
    soup = BeautifulSoup(file.content.value, "html.parser")
    resolve_header_ids(soup)
    file.toc = gen_toc(soup)
    resolve_links(soup, base_url, root_dir, file.doc_path or "")
    resolve_images(soup, root_dir, file.doc_path or "")
    content = str(soup)
    # An already resolved document carries the anchor instead of the marker.
    marker = MORE_MARKER if MORE_MARKER in content else MORE_ANCHOR
    parts = content.split(marker)
    if len(parts) > 1:
        file.excerpt = parts[0]
        file.more = "".join(parts[1:])
        content = MORE_ANCHOR.join(parts)
    else:
        file.excerpt = None
        file.more = None
    file.content = Final(content)


def resolve_toc_and_links(site: Site) -> Site:
    base_url = site.site_config.get("baseURL")
    root_dir = site.site_config.get("rootDir")
    for file in site.posts + site.pages:
        resolve_document(file, base_url, root_dir)
    return site


def register_builtin_processors(processor: Processor) -> None:
    """Register the built-in steps in their load-bearing order."""
    processor.register("post sequence", sequence_posts)
    processor.register("categories collection", collect_categories)
    processor.register("tags collection", collect_tags)
    processor.register("toc and link resolving", resolve_toc_and_links)
