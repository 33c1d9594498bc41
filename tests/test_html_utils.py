from bs4 import BeautifulSoup

from lantern.html_utils import (
    escape_html,
    gen_toc,
    generate_heading_id,
    get_path_fn,
    get_url_fn,
    is_current_path_fn,
    join_root_url,
    resolve_header_ids,
    resolve_images,
    resolve_links,
    resolve_relative,
)


def soup_of(html):
    return BeautifulSoup(html, "html.parser")


def test_escape_and_join():
    assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"
    assert join_root_url("https://example.com/", "/about") == "https://example.com/about"
    assert join_root_url("", "/about") == "/about"


def test_get_path_strips_index():
    get_path = get_path_fn("/blog")
    assert get_path() == "/blog/"
    assert get_path("index.html") == "/blog/"
    assert get_path("tags/python/index.html") == "/blog/tags/python/"
    assert get_path("posts/a b.html") == "/blog/posts/a%20b.html"
    assert get_path_fn("/")("rss.xml") == "/rss.xml"


def test_get_url():
    get_url = get_url_fn("https://example.com", "/blog")
    assert get_url("about/index.html") == "https://example.com/blog/about/"


def test_is_current_path():
    is_current = is_current_path_fn("/", "archives/page/2/index.html")
    assert is_current("archives/index.html")
    assert not is_current("archives/index.html", strict=True)
    assert not is_current("")
    assert is_current_path_fn("/", "index.html")("")


def test_heading_ids_are_unique_and_existing_ids_kept():
    soup = soup_of('<h1>Intro</h1><h2 id="keep">Intro</h2><h2>Intro</h2><h3>!!!</h3>')
    resolve_header_ids(soup)
    ids = [h["id"] for h in soup.find_all(["h1", "h2", "h3"])]
    assert ids == ["intro", "keep", "intro-1", "section"]
    assert generate_heading_id("Hello, World") == "hello-world"


def test_gen_toc_nests_by_level():
    soup = soup_of('<h2 id="a">A</h2><h3 id="b">B</h3><h4 id="c">C</h4><h2 id="d">D</h2>')
    toc = gen_toc(soup)
    assert [node.anchor for node in toc] == ["a", "d"]
    assert toc[0].subs[0].anchor == "b"
    assert toc[0].subs[0].subs[0].text == "C"
    assert toc[1].subs == []


def test_resolve_links():
    soup = soup_of(
        '<a href="../other/">o</a>'
        '<a href="img.png?x=1#top">i</a>'
        '<a href="#frag">f</a>'
        '<a href="https://elsewhere.org/">e</a>'
        '<a href="https://example.com/inside">s</a>'
    )
    resolve_links(soup, "https://example.com", "/", "posts/hello/index.html")
    anchors = soup.find_all("a")
    assert anchors[0]["href"] == "/posts/other/"
    assert anchors[1]["href"] == "/posts/hello/img.png?x=1#top"
    assert anchors[2]["href"] == "#frag"
    assert anchors[3]["target"] == "_blank"
    assert "noopener" in anchors[3]["rel"]
    assert anchors[4].get("target") is None


def test_resolve_images_under_root_dir():
    soup = soup_of('<img src="cover.jpg"><img src="/abs.png"><img src="data:image/png;base64,AA">')
    resolve_images(soup, "/blog", "posts/a.html")
    sources = [img["src"] for img in soup.find_all("img")]
    assert sources == ["/blog/posts/cover.jpg", "/abs.png", "data:image/png;base64,AA"]


def test_resolve_relative_does_not_escape_root():
    assert resolve_relative("../../x.png", "/", "a.html") == "/x.png"
    assert resolve_relative("mailto:me@example.com", "/", "a.html") == "mailto:me@example.com"
