"""Tests for document rewriting: attributes, srcset, inline CSS and cleanup."""

from bs4 import BeautifulSoup

from pagepack.markup import (
    PLACEHOLDER_IMAGE,
    cleanup_residual_references,
    document_base_url,
    queue_proxy_originals,
    rewrite_markup,
    srcset_references,
)
from pagepack.models import ExternalAssetRequest

from .fakes import PAGE_URL, resource


def soup_of(html):
    return BeautifulSoup(html, "html.parser")


def test_optimized_image_points_at_original(store, resolver):
    store.insert("photo.png", resource())
    soup = soup_of('<img src="/_next/image?url=%2Fphoto.png&amp;w=640">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["src"] == "photo.png"


def test_missing_optimized_image_gets_placeholder(resolver):
    soup = soup_of('<img src="/_next/image?url=%2Fmissing.png&amp;w=64" style="width: 10px">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["src"] == PLACEHOLDER_IMAGE
    assert soup.img["style"] == "width: 10px; opacity: 0.5"


def test_unresolved_image_gets_placeholder(resolver):
    soup = soup_of('<img src="/gone.png">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["src"] == PLACEHOLDER_IMAGE
    assert "opacity: 0.5" in soup.img["style"]


def test_stylesheet_link_with_version_query(store, resolver):
    store.insert("css/app.css", resource(b"body{}", "text/css"))
    soup = soup_of('<link rel="stylesheet" href="/css/app.css?v=3">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.link["href"] == "css/app.css"


def test_query_key_is_href_encoded(store, resolver):
    store.insert("bundle.js?v=3", resource())
    soup = soup_of('<script src="/bundle.js?v=3"></script>')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.script["src"] == "bundle.js%3Fv=3"


def test_api_script_reference_is_removed(resolver):
    soup = soup_of('<script src="/api/track.js"></script>')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert not soup.script.has_attr("src")


def test_inert_and_unknown_links_are_untouched(resolver):
    soup = soup_of('<a href="mailto:hi@example.com">mail</a><a href="/about">about</a>')
    rewrite_markup(soup, resolver, PAGE_URL)
    links = soup.find_all("a")
    assert links[0]["href"] == "mailto:hi@example.com"
    assert links[1]["href"] == "/about"


def test_fragment_is_kept(store, resolver):
    store.insert("icons.svg", resource())
    soup = soup_of('<use href="/icons.svg#star"></use>')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.use["href"] == "icons.svg#star"


def test_srcset_entries_are_rewritten_individually(store, resolver):
    store.insert("a.png", resource())
    soup = soup_of('<img srcset="/a.png 1x, /b.png 2x">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["srcset"] == "a.png 1x, /b.png 2x"


def test_srcset_drops_unresolvable_optimized_entries(store, resolver):
    store.insert("a.png", resource())
    soup = soup_of(
        '<img srcset="/a.png 1x, /_next/image?url=%2Fnone.png&amp;w=2 2x">'
    )
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["srcset"] == "a.png 1x"


def test_srcset_references():
    assert srcset_references("/a.png 1x, /b.png 2x") == ["/a.png", "/b.png"]
    assert srcset_references("data:image/png;base64,AA,BB") == ["data:image/png;base64,AA,BB"]


def test_external_image_is_queued(resolver, harvester):
    soup = soup_of('<img src="https://cdn.other.com/pics/cat">')
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["src"] == "external_images/cat.jpg"
    assert harvester.requests == [
        ExternalAssetRequest("https://cdn.other.com/pics/cat", "external_images/cat.jpg")
    ]


def test_inline_style_and_style_block(store, resolver):
    store.insert("img/bg.png", resource())
    soup = soup_of(
        '<style>.hero{background:url("../img/bg.png")}</style>'
        '<div style="background: url(/img/bg.png)"></div>'
    )
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.div["style"] == "background: url('img/bg.png')"
    assert soup.style.string == ".hero{background:url('img/bg.png')}"


def test_base_tag_is_honoured_and_removed():
    soup = soup_of('<head><base href="/blog/"></head><img src="cover.png">')
    assert document_base_url(soup, PAGE_URL) == "https://example.com/blog/"
    assert soup.find("base") is None


def test_document_without_base_keeps_page_url():
    assert document_base_url(soup_of("<p>hi</p>"), PAGE_URL) == PAGE_URL


def test_queue_proxy_originals(resolver, harvester):
    soup = soup_of(
        '<img src="/_next/image?url=%2Fone.png&amp;w=64"'
        ' srcset="/_next/image?url=%2Fone.png&amp;w=64 1x, /_next/image?url=%2Ftwo.png&amp;w=128 2x">'
    )
    queue_proxy_originals(soup, resolver, PAGE_URL)
    assert [request.local_path for request in harvester.requests] == ["one.png", "two.png"]


class TestCleanup:
    def test_residual_optimized_image_matched_by_name(self, store, resolver):
        store.insert("media/hero.png", resource())
        soup = soup_of(
            '<img src="/_next/image?url=%2Fhero.png&amp;w=1"'
            ' srcset="/_next/image?url=%2Fhero.png&amp;w=1 1x">'
        )
        cleanup_residual_references(soup, resolver, PAGE_URL)
        assert soup.img["src"] == "media/hero.png"
        assert not soup.img.has_attr("srcset")

    def test_residual_without_original_gets_placeholder(self, resolver):
        soup = soup_of('<img src="/_next/image?url=%2Fnope.png&amp;w=1">')
        cleanup_residual_references(soup, resolver, PAGE_URL)
        assert soup.img["src"] == PLACEHOLDER_IMAGE

    def test_preload_links_and_tracking_scripts_removed(self, resolver):
        soup = soup_of(
            '<link rel="preload" as="image" imagesrcset="/_next/image?url=%2Fa.png&amp;w=1 1x">'
            '<link rel="stylesheet" href="app.css">'
            '<script src="https://www.googletagmanager.com/gtag/js?id=G-1"></script>'
            '<script src="app.js"></script>'
            '<img src="/api/avatar">'
        )
        removed = cleanup_residual_references(soup, resolver, PAGE_URL)
        assert removed == 3
        assert [link["href"] for link in soup.find_all("link")] == ["app.css"]
        assert [script["src"] for script in soup.find_all("script")] == ["app.js"]
        assert not soup.img.has_attr("src")


def test_srcset_urls_containing_commas(resolver):
    soup = soup_of(
        '<img srcset="/a.png 1x, '
        'https://res.cloudinary.com/demo/image/upload/w_100,h_100/cat.jpg 2x">'
    )
    rewrite_markup(soup, resolver, PAGE_URL)
    assert soup.img["srcset"] == "/a.png 1x, external_images/cat.jpg 2x"


def test_srcset_parsing_follows_html_rules():
    assert srcset_references("/a.png 1x,data:image/png;base64,AA,BB 2x") == [
        "/a.png",
        "data:image/png;base64,AA,BB",
    ]
    assert srcset_references("/a.png, /b.png 2x") == ["/a.png", "/b.png"]
    assert srcset_references("/a.png,/b.png 2x") == ["/a.png,/b.png"]
    assert srcset_references("  ") == []
