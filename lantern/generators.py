"""Page generation for Lantern.

A Generator runs named functions in registration order; each one reads the
processed Site and returns new Files that have no source file: paginated
index and archive pages, category and tag pages, and feeds. The concatenated
result becomes `Site.files`.

Functions:
    paginate: Split a post list into numbered page Files.
    per_page: Resolve the configured page size for a page kind.
    register_builtin_generators: Register the built-in generators.

Classes:
    FeedGenerator: Base class for XML feeds (sitemap.xml, rss.xml).
"""

from __future__ import annotations

import math
import posixpath
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .content import FILE, Category, File, Final, Site
from .errors import PathCollisionError
from .html_utils import escape_html, get_url_fn
from .logging import get_logger

logger = get_logger("generators")

GenerateFn = Callable[[Site], Iterable[File]]

DEFAULT_PER_PAGE = 10


@dataclass(frozen=True)
class GenerateStep:
    name: str
    fn: GenerateFn


class Generator:
    """Ordered registry of page generators."""

    def __init__(self) -> None:
        self._steps: list[GenerateStep] = []

    def register(self, name: str, fn: GenerateFn) -> None:
        """Append a named generator.

        Raises:
            TypeError: If fn is not callable.
        """
        if not callable(fn):
            raise TypeError("fn must be callable")
        self._steps.append(GenerateStep(name, fn))

    @property
    def names(self) -> list[str]:
        return [step.name for step in self._steps]

    def generate(self, site: Site) -> list[File]:
        """Run every generator and concatenate their output.

        Args:
            site: Processed Site.

        Returns:
            Generated Files in generator order.

        Raises:
            PathCollisionError: If two generated Files share a doc_path
                or one escapes the output directory.
        """
        results: list[File] = []
        owners: dict[str, str] = {}
        for step in self._steps:
            logger.debug("Generating `%s`...", step.name)
            for file in step.fn(site):
                key = posixpath.normpath(file.doc_path or "")
                if key == ".." or key.startswith(("../", "/")):
                    raise PathCollisionError(f"`{step.name}` generates `{file.doc_path}` outside the output directory")
                owner = owners.get(key)
                if owner is not None:
                    raise PathCollisionError(
                        f"`{step.name}` and `{owner}` both generate `{file.doc_path}`"
                    )
                owners[key] = step.name
                results.append(file)
        return results


def per_page(site_config: Mapping[str, Any], kind: str) -> int:
    """Resolve the page size for a page kind.

    `perPage` is either one number for every kind or a mapping from kind
    (`index`, `archives`, `category`, `tag`) to number.
    """
    value = site_config.get("perPage")
    if isinstance(value, Mapping):
        value = value.get(kind)
    try:
        size = int(value) if value is not None else DEFAULT_PER_PAGE
    except (TypeError, ValueError):
        raise ValueError(f"Invalid perPage value for {kind}: {value!r}") from None
    return size if size > 0 else DEFAULT_PER_PAGE


def page_path(base_path: str, index: int) -> str:
    """Return the doc path of the page with a 1-based index.

    Examples:
        >>> page_path("archives/index.html", 1)
        'archives/index.html'
        >>> page_path("archives/index.html", 3)
        'archives/page/3/index.html'
    """
    if index <= 1:
        return base_path
    dirname, basename = posixpath.split(base_path)
    return posixpath.join(dirname, "page", str(index), basename)


def paginate(base: File, posts: Sequence[File], size: int) -> list[File]:
    """Split posts into page Files cloned from a base File.

    An empty post list still produces one (empty) page, so listing pages
    always exist.

    Args:
        base: Template File carrying layout, title and the first page's doc_path.
        posts: Posts in display order.
        size: Posts per page.

    Returns:
        Page Files in order.
    """
    count = max(1, math.ceil(len(posts) / size))
    pages: list[File] = []
    for index in range(1, count + 1):
        chunk = list(posts[(index - 1) * size : index * size])
        pages.append(
            base.clone(
                doc_path=page_path(base.doc_path or "index.html", index),
                page_array=chunk,
                posts=chunk,
                page_index=index,
                page_count=count,
            )
        )
    return pages


def _listing(site: Site, layout: str, doc_path: str, title: str, **fields: Any) -> File:
    return File(
        doc_dir=site.site_config.get("docDir"),
        doc_path=doc_path,
        layout=layout,
        title=title,
        type=FILE,
        comment=False,
        reward=False,
        **fields,
    )


def generate_index(site: Site) -> list[File]:
    base = _listing(site, "index", posixpath.join(site.site_config.get("indexDir") or "", "index.html"), "index")
    return paginate(base, site.posts, per_page(site.site_config, "index"))


def generate_archives(site: Site) -> list[File]:
    archive_dir = site.site_config.get("archiveDir") or "archives"
    base = _listing(site, "archives", posixpath.join(archive_dir, "index.html"), "archives")
    return paginate(base, site.posts, per_page(site.site_config, "archives"))


def paginate_category(site: Site, category: Category, size: int) -> list[File]:
    """Paginate a category and, recursively, its sub-categories."""
    base = _listing(site, "category", category.doc_path, "category", name=category.name)
    results = paginate(base, category.posts, size)
    for sub in category.subs:
        results.extend(paginate_category(site, sub, size))
    return results


def generate_categories(site: Site) -> list[File]:
    size = per_page(site.site_config, "category")
    results: list[File] = []
    for category in site.categories:
        results.extend(paginate_category(site, category, size))
    category_dir = site.site_config.get("categoryDir") or "categories"
    results.append(_listing(site, "categories", posixpath.join(category_dir, "index.html"), "categories"))
    return results


def generate_tags(site: Site) -> list[File]:
    size = per_page(site.site_config, "tag")
    results: list[File] = []
    for tag in site.tags:
        posts = sorted(tag.posts, key=lambda p: p.created_time, reverse=True)
        base = _listing(site, "tag", tag.doc_path, "tag", name=tag.name)
        results.extend(paginate(base, posts, size))
    tag_dir = site.site_config.get("tagDir") or "tags"
    results.append(_listing(site, "tags", posixpath.join(tag_dir, "index.html"), "tags"))
    return results


class FeedGenerator(ABC):
    """Abstract base class for feed generators.

    Subclasses implement specific feed formats (sitemap, RSS). A feed is only
    produced when the site configures `baseURL`, since feeds need absolute URLs.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output path of this feed, such as 'sitemap.xml'."""
        ...

    @abstractmethod
    def render(self, site: Site) -> str:
        """Render the feed document for a processed Site."""
        ...

    def __call__(self, site: Site) -> list[File]:
        if not site.site_config.get("baseURL"):
            return []
        return [
            File(
                doc_dir=site.site_config.get("docDir"),
                doc_path=self.filename,
                type=FILE,
                content=Final(self.render(site)),
            )
        ]


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml listing every post and HTML page."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def render(self, site: Site) -> str:
        get_url = get_url_fn(site.site_config.get("baseURL"), site.site_config.get("rootDir"))
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for file in site.posts + site.pages:
            if not (file.doc_path or "").endswith(".html"):
                continue
            entry = f"  <url><loc>{escape_html(get_url(file.doc_path))}</loc>"
            stamp = file.updated_date or file.created_date
            if stamp is not None:
                entry += f"<lastmod>{stamp.strftime('%Y-%m-%d')}</lastmod>"
            lines.append(entry + "</url>")
        lines.append("</urlset>")
        return "\n".join(lines)


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the newest posts.

    Attributes:
        limit: Maximum number of items.
    """

    def __init__(self, limit: int = 20):
        self.limit = limit

    @property
    def filename(self) -> str:
        return "rss.xml"

    def render(self, site: Site) -> str:
        config = site.site_config
        get_url = get_url_fn(config.get("baseURL"), config.get("rootDir"))
        items = []
        for post in site.posts[: self.limit]:
            link = escape_html(get_url(post.doc_path))
            description = post.excerpt or _final_text(post) or post.title or ""
            item = (
                f"<item><title>{escape_html(post.title or '')}</title><link>{link}</link>"
                f"<guid>{link}</guid>"
                f"<description>{escape_html(description)}</description>"
            )
            if post.created_date is not None:
                item += f"<pubDate>{_rfc822(post.created_date)}</pubDate>"
            items.append(item + "</item>")

        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape_html(str(config.get('title') or 'Lantern Feed'))}</title>",
            f"<link>{escape_html(get_url(''))}</link>",
            f"<description>{escape_html(str(config.get('description') or ''))}</description>",
            f"<lastBuildDate>{_rfc822(_latest(site))}</lastBuildDate>",
        ]
        rss.extend(items)
        rss.append("</channel></rss>")
        return "\n".join(rss)


def _final_text(file: File) -> str:
    if isinstance(file.content, Final) and isinstance(file.content.value, str):
        return file.content.value
    return ""


def _latest(site: Site) -> datetime:
    # Derived from content so repeated passes render identical feeds.
    dates = [p.updated_date or p.created_date for p in site.posts]
    dates = [d for d in dates if d is not None]
    if not dates:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    return max(dates, key=lambda d: d.timestamp())


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S +0000")


def register_builtin_generators(generator: Generator) -> None:
    """Register the built-in generators."""
    generator.register("index pages", generate_index)
    generator.register("archives pages", generate_archives)
    generator.register("categories pages", generate_categories)
    generator.register("tags pages", generate_tags)
    generator.register("sitemap", SitemapGenerator())
    generator.register("rss feed", RSSGenerator())
