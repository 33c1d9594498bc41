from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from lantern.content import Deferred, File, Final, Site, classify
from lantern.errors import ConfigError
from lantern.processors import (
    MORE_ANCHOR,
    Processor,
    category_path,
    collect_categories,
    collect_tags,
    register_builtin_processors,
    resolve_document,
    sequence_posts,
    tag_names,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def post(name, days, categories=None, tags=None, content="<p>x</p>"):
    front_matter = {}
    if categories is not None:
        front_matter["categories"] = categories
    if tags is not None:
        front_matter["tags"] = tags
    return classify(
        File(
            src_dir=Path("/src"),
            src_path=f"{name}.md",
            doc_path=f"{name}.html",
            layout="post",
            title=name,
            created_date=BASE + timedelta(days=days),
            front_matter=front_matter,
            content=Final(content),
        )
    )


def make_site(posts, pages=()):
    return Site(
        Path("."),
        site_config={"rootDir": "/", "baseURL": "", "categoryDir": "categories", "tagDir": "tags"},
        posts=list(posts),
        pages=list(pages),
    )


def test_processor_runs_steps_in_order():
    processor = Processor()
    calls = []
    processor.register("one", lambda site: calls.append("one") or site)
    processor.register("two", lambda site: calls.append("two") or site)
    site = make_site([])
    assert processor.process(site) is site
    assert calls == ["one", "two"]
    assert processor.names == ["one", "two"]


def test_sequence_posts_links_neighbors():
    old, mid, new = post("old", 1), post("mid", 2), post("new", 3)
    site = sequence_posts(make_site([mid, old, new]))
    assert site.posts == [new, mid, old]
    assert new.next is None and new.prev is mid
    assert mid.next is new and mid.prev is old
    assert old.next is mid and old.prev is None


def test_category_and_tag_normalization():
    assert category_path("a/b") == ["a", "b"]
    assert category_path(["a", "b/c"]) == ["a", "b", "c"]
    assert category_path(None) == []
    assert tag_names("solo") == ["solo"]
    assert tag_names(["x", "y", "x", " "]) == ["x", "y"]


def test_category_tree():
    first = post("first", 1, categories="a/c")
    second = post("second", 2, categories=["a", "b"])
    third = post("third", 3, categories="z")
    site = collect_categories(sequence_posts(make_site([first, second, third])))

    assert [c.name for c in site.categories] == ["a", "z"]
    root = site.categories[0]
    assert [c.name for c in root.subs] == ["b", "c"]
    assert root.posts == [second, first]
    assert root.doc_path == "categories/a/index.html"
    assert root.subs[0].doc_path == "categories/a/b/index.html"
    assert site.categories_length == 4
    assert [c.name for c in first.categories] == ["a", "c"]


def test_tags_sorted_by_name():
    first = post("first", 1, tags=["web", "python"])
    second = post("second", 2, tags="python")
    site = collect_tags(sequence_posts(make_site([first, second])))
    assert [t.name for t in site.tags] == ["python", "web"]
    assert site.tags[0].posts == [second, first]
    assert site.tags[0].doc_path == "tags/python/index.html"
    assert site.tags_length == 2
    assert [t.name for t in first.tags] == ["web", "python"]


@pytest.mark.parametrize(
    "categories, tags",
    [("../..", None), ("a/./b", None), (None, "../../etc"), (None, ".."), (None, "/abs")],
)
def test_names_that_escape_the_output_dir_are_rejected(categories, tags):
    site = sequence_posts(make_site([post("evil", 1, categories=categories, tags=tags)]))
    with pytest.raises(ConfigError):
        collect_tags(collect_categories(site))


def test_resolve_document_toc_links_and_excerpt():
    file = post(
        "posts/hello",
        1,
        content='<h2>Start</h2><p><a href="other.html">o</a></p><!--more--><h2>End</h2>',
    )
    resolve_document(file, "", "/")
    html = file.content.value
    assert [node.anchor for node in file.toc] == ["start", "end"]
    assert 'href="/posts/other.html"' in html
    assert MORE_ANCHOR in html
    assert "<!--more-->" not in html
    assert file.excerpt.endswith("</p>")
    assert 'id="end"' in file.more


def test_resolve_document_is_idempotent():
    file = post("a", 1, content="<h1>T</h1><p>one</p><!--more--><p>two</p>")
    resolve_document(file, "", "/")
    first = (file.content.value, file.excerpt, file.more)
    resolve_document(file, "", "/")
    assert (file.content.value, file.excerpt, file.more) == first


def test_resolve_document_skips_deferred():
    file = post("a", 1)
    file.content = Deferred(lambda ctx: "<h1>x</h1>")
    resolve_document(file, "", "/")
    assert file.toc == []


def test_builtin_sequence_is_idempotent():
    processor = Processor()
    register_builtin_processors(processor)
    assert processor.names == [
        "post sequence",
        "categories collection",
        "tags collection",
        "toc and link resolving",
    ]
    site = make_site(
        [post("a", 1, categories="x/y", tags="t"), post("b", 2, categories="x", tags=["t", "u"])]
    )
    processor.process(site)
    snapshot = (
        [p.src_path for p in site.posts],
        [(c.name, [s.name for s in c.subs], [p.src_path for p in c.posts]) for c in site.categories],
        [(t.name, [p.src_path for p in t.posts]) for t in site.tags],
        [p.content.value for p in site.posts],
    )
    processor.process(site)
    again = (
        [p.src_path for p in site.posts],
        [(c.name, [s.name for s in c.subs], [p.src_path for p in c.posts]) for c in site.categories],
        [(t.name, [p.src_path for p in t.posts]) for t in site.tags],
        [p.content.value for p in site.posts],
    )
    assert again == snapshot
