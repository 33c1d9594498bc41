"""Content model for Lantern.

This module holds the plain data records that flow through the pipeline.
A File is created when a source path is discovered (or a generator emits a
synthetic page) and is mutated through the render, process and generate stages.
The Site aggregates every File of a run together with the derived category and
tag trees.

Key classes:
- File: One unit of content, from raw source to decorated output.
- Site: Aggregate site state owned by the Router.
- Category, Tag, TOC: Derived aggregation records.
- Final, Deferred: The two shapes a File's content can take.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Union

POST = "post"
PAGE = "page"
ASSET = "asset"
FILE = "file"

# Partitions holding source-derived output, in output order.
SOURCE_PARTITIONS = ("assets", "posts", "pages")

_PARTITION_BY_TYPE = {ASSET: "assets", POST: "posts", PAGE: "pages"}


@dataclass(frozen=True)
class Final:
    """Content that is ready to be written or served as-is."""

    value: str | bytes


@dataclass(frozen=True)
class Deferred:
    """Content whose final evaluation waits for the complete site context.

    Attributes:
        render: Callable receiving the page context mapping and returning text.
    """

    render: Callable[[Mapping[str, Any]], str]


Content = Union[Final, Deferred]


def resolve_content(content: Content | None, context: Mapping[str, Any]) -> str | bytes:
    """Resolve a File's content against a page context.

    Args:
        content: Final or Deferred content, or None for empty content.
        context: Read-only context passed to deferred renderers.

    Returns:
        The final string or bytes value.
    """
    if content is None:
        return ""
    if isinstance(content, Deferred):
        return content.render(context)
    return content.value


@dataclass(eq=False)
class Category:
    """A node of the category tree.

    Attributes:
        name: Category name (one path segment).
        posts: Posts filed under this category or any of its subs.
        subs: Ordered sub-categories.
        doc_path: Output path of the category's first listing page.
    """

    name: str
    posts: list[File] = field(default_factory=list)
    subs: list[Category] = field(default_factory=list)
    doc_path: str | None = None


@dataclass(eq=False)
class Tag:
    """A flat tag with the posts carrying it."""

    name: str
    posts: list[File] = field(default_factory=list)
    doc_path: str | None = None


@dataclass(eq=False)
class TOC:
    """A table of contents node built from a heading.

    Attributes:
        name: Heading tag name (h1-h6).
        anchor: Id of the heading element.
        text: Heading text.
        subs: Nested deeper headings.
    """

    name: str
    anchor: str
    text: str
    subs: list[TOC] = field(default_factory=list)


@dataclass(eq=False)
class File:
    """One unit of content at any pipeline stage.

    Equality is identity: the same record is linked from many places (next/prev,
    category and tag post lists, pagination slices).

    Attributes:
        doc_dir: Output root directory.
        src_dir: Source root directory, None for generated files.
        src_path: Path relative to src_dir, posix separators.
        doc_path: Path relative to doc_dir, posix separators.
        is_binary: Whether raw bytes were sniffed as binary.
        raw: Bytes as read from disk.
        text: Text view with the front matter stripped.
        content: Render result (Final or Deferred).
        type: One of post, page, asset or file.
        front_matter: Parsed front matter mapping.
    """

    doc_dir: Path | None = None
    src_dir: Path | None = None
    src_path: str | None = None
    doc_path: str | None = None
    is_binary: bool = False
    created_date: datetime | None = None
    updated_date: datetime | None = None
    zone: str | None = None
    title: str | None = None
    layout: str | None = None
    comment: bool | None = None
    reward: bool | None = None
    language: str | None = None
    raw: bytes | None = None
    text: str | None = None
    content: Content | None = None
    type: str | None = None
    front_matter: dict[str, Any] = field(default_factory=dict)
    categories: list[Category] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    excerpt: str | None = None
    more: str | None = None
    toc: list[TOC] = field(default_factory=list)
    posts: list[File] = field(default_factory=list)
    page_array: list[File] = field(default_factory=list)
    page_index: int | None = None
    page_count: int | None = None
    next: File | None = None
    prev: File | None = None
    name: str | None = None

    @property
    def created_time(self) -> float:
        """POSIX timestamp of created_date, 0 when unknown."""
        if self.created_date is None:
            return 0.0
        return self.created_date.timestamp()

    def clone(self, **changes: Any) -> File:
        """Return a shallow copy with fresh mutable containers.

        Args:
            **changes: Field values to set on the copy.

        Returns:
            New File instance.
        """
        copied = dataclasses.replace(
            self,
            front_matter=dict(self.front_matter),
            categories=list(self.categories),
            tags=list(self.tags),
            toc=list(self.toc),
            posts=list(self.posts),
            page_array=list(self.page_array),
        )
        for key, value in changes.items():
            setattr(copied, key, value)
        return copied

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"File(type={self.type!r}, src_path={self.src_path!r}, doc_path={self.doc_path!r})"


@dataclass(eq=False)
class Site:
    """Aggregate site state for one run.

    Attributes:
        work_dir: Project directory.
        site_config: Site configuration with resolved directories.
        theme_config: Theme configuration.
        posts: Source files classified as posts.
        pages: Source files classified as pages.
        assets: Source files classified as assets.
        files: Generator output.
        categories: Top-level categories.
        categories_length: Number of category nodes in the tree.
        tags: All tags.
        tags_length: Number of tags.
    """

    work_dir: Path
    site_config: dict[str, Any] = field(default_factory=dict)
    theme_config: dict[str, Any] = field(default_factory=dict)
    posts: list[File] = field(default_factory=list)
    pages: list[File] = field(default_factory=list)
    assets: list[File] = field(default_factory=list)
    files: list[File] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    categories_length: int = 0
    tags: list[Tag] = field(default_factory=list)
    tags_length: int = 0

    def all_files(self) -> list[File]:
        """Return every output file in output order."""
        return self.assets + self.posts + self.pages + self.files

    def remove_source(self, src_dir: Path | None, src_path: str) -> list[File]:
        """Drop every record loaded from a source file.

        Args:
            src_dir: Source root of the file.
            src_path: Path relative to the source root.

        Returns:
            The removed records.
        """
        removed: list[File] = []
        for key in SOURCE_PARTITIONS:
            kept = []
            for existing in getattr(self, key):
                if _same_source(existing, src_dir, src_path):
                    removed.append(existing)
                else:
                    kept.append(existing)
            setattr(self, key, kept)
        return removed

    def replace_source(
        self, src_dir: Path | None, src_path: str, results: Iterable[File]
    ) -> None:
        """Upsert the render results of one source file.

        Records previously loaded from the same source are removed from all
        partitions; each new record is placed where the first old record of its
        partition was, or appended.

        Args:
            src_dir: Source root of the file.
            src_path: Path relative to the source root.
            results: Classified render results.
        """
        positions: dict[str, int] = {}
        for key in SOURCE_PARTITIONS:
            for index, existing in enumerate(getattr(self, key)):
                if _same_source(existing, src_dir, src_path):
                    positions[key] = index
                    break
        self.remove_source(src_dir, src_path)
        grouped: dict[str, list[File]] = {key: [] for key in SOURCE_PARTITIONS}
        for result in results:
            grouped[partition_for(result)].append(result)
        for key, new_files in grouped.items():
            if not new_files:
                continue
            items = getattr(self, key)
            at = positions.get(key, len(items))
            setattr(self, key, items[:at] + new_files + items[at:])


def partition_for(file: File) -> str:
    """Return the Site attribute name holding a classified file."""
    try:
        return _PARTITION_BY_TYPE[file.type]
    except KeyError:
        raise ValueError(f"File {file.src_path!r} has no source partition for type {file.type!r}") from None


def classify(file: File) -> File:
    """Set a rendered file's type from its layout."""
    if file.layout == "post":
        file.type = POST
    elif file.layout is not None:
        file.type = PAGE
    else:
        file.type = ASSET
    return file


def _same_source(file: File, src_dir: Path | None, src_path: str) -> bool:
    return file.src_path == src_path and file.src_dir == src_dir
