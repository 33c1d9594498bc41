from concurrent.futures import Future
from pathlib import Path

import pytest
from jinja2 import Environment

from lantern.content import Deferred, File, Final, Site
from lantern.renderers import Renderer, html_handler, markdown_handler, register_builtin_renderers


def loaded(src_path, text="", raw=None):
    return File(
        src_dir=Path("/src"),
        src_path=src_path,
        text=text,
        raw=raw if raw is not None else text.encode("utf-8"),
    )


def test_unhandled_extension_is_copied_through():
    renderer = Renderer()
    results = renderer.render(loaded("css/style.css", "body {}"))
    assert len(results) == 1
    assert results[0].doc_path == "css/style.css"
    assert results[0].content == Final(b"body {}")


def test_skip_render_copies_source():
    renderer = Renderer(skip_render=["raw.md"])
    renderer.register(".md", ".html", html_handler)
    results = renderer.render(loaded("raw.md", "# Title"))
    assert results[0].doc_path == "raw.md"
    assert results[0].content == Final(b"# Title")


def test_multiple_handlers_fan_out_in_order():
    renderer = Renderer()

    def upper(file):
        file.content = Final(file.text.upper())
        return file

    def as_future(file):
        future = Future()
        file.content = Final(file.text[::-1])
        future.set_result(file)
        return future

    renderer.register(".txt", ".up", upper)
    renderer.register(".txt", ".rev", as_future)
    source = loaded("notes/a.txt", "abc")
    results = renderer.render(source)
    assert [r.doc_path for r in results] == ["notes/a.up", "notes/a.rev"]
    assert [r.content.value for r in results] == ["ABC", "cba"]
    assert source.content is None


def test_register_accepts_handler_in_second_position():
    renderer = Renderer()
    renderer.register(".j2", html_handler)
    assert renderer.handlers(".j2")[0].doc_ext is None
    with pytest.raises(TypeError):
        renderer.register(".x", ".y", "not callable")


def test_handler_errors_propagate():
    renderer = Renderer()

    def broken(file):
        raise RuntimeError("boom")

    renderer.register(".md", ".html", broken)
    with pytest.raises(RuntimeError):
        renderer.render(loaded("a.md", "x"))


def test_markdown_handler_highlights_code():
    render = markdown_handler({"cssclass": "code"})
    file = render(loaded("a.md", "# Hi\n\n~~gone~~\n\n```python\nprint('x')\n```\n"))
    html = file.content.value
    assert "<h1>Hi</h1>" in html
    assert "<del>gone</del>" in html
    assert 'class="code"' in html


def test_markdown_keeps_more_marker():
    render = markdown_handler()
    html = render(loaded("a.md", "Intro\n\n<!--more-->\n\nRest\n")).content.value
    assert "<!--more-->" in html


def test_builtin_jinja_handler_is_deferred(tmp_path):
    site = Site(tmp_path, site_config={"highlight": {}})
    renderer = Renderer()
    register_builtin_renderers(renderer, site, Environment())
    results = renderer.render(loaded("about.j2", "Hello {{ page.title }}"))
    assert results[0].doc_path == "about.j2"
    assert isinstance(results[0].content, Deferred)
    assert results[0].content.render({"page": {"title": "you"}}) == "Hello you"

    html = renderer.render(loaded("index.md", "*x*"))
    assert html[0].doc_path == "index.html"
    assert html[0].content.value.strip() == "<p><em>x</em></p>"
