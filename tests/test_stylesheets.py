"""Tests for url() rewriting inside captured stylesheets."""

from pagepack.errors import CAPTURE_DECODE_FAILURE, EXTERNAL_FETCH_FAILURE, REFERENCE_UNRESOLVED
from pagepack.stylesheets import clean_css_url, prescan_stylesheets, rewrite_stylesheets

from .fakes import PNG_BYTES, FakeResponse, resource

CSS_URL = "https://example.com/css/app.css"


def add_css(store, text, key="css/app.css", source_url=CSS_URL):
    store.insert(key, resource(text.encode("utf-8"), "text/css; charset=utf-8", source_url))


def rewritten(resolver, key="css/app.css"):
    return rewrite_stylesheets(resolver)[key].decode("utf-8")


def test_clean_css_url():
    assert clean_css_url(" 'a.png' ") == "a.png"
    assert clean_css_url('"b.png"') == "b.png"


def test_root_relative_font(store, resolver):
    add_css(store, "@font-face{src:url(/fonts/x.woff2)}")
    store.insert("fonts/x.woff2", resource())
    assert rewritten(resolver) == "@font-face{src:url('../fonts/x.woff2')}"


def test_relative_references(store, resolver):
    add_css(store, 'a{background:url(img/a.png)} b{src:url("../fonts/x.woff2?v=2#iefix")}')
    store.insert("css/img/a.png", resource())
    store.insert("fonts/x.woff2", resource())
    assert rewritten(resolver) == (
        "a{background:url('img/a.png')} b{src:url('../fonts/x.woff2#iefix')}"
    )


def test_relative_reference_without_source_url(store, resolver):
    add_css(store, "a{background:url(img/a.png)}", source_url=None)
    store.insert("css/img/a.png", resource())
    assert rewritten(resolver) == "a{background:url('img/a.png')}"


def test_query_variant_key(store, resolver):
    add_css(store, "a{background:url(/sprite.png)}")
    store.insert("sprite.png?v=7", resource())
    assert rewritten(resolver) == "a{background:url('../sprite.png%3Fv=7')}"


def test_data_uri_is_untouched(store, resolver):
    text = "a{background:url(data:image/png;base64,AAAA)}"
    add_css(store, text)
    assert rewritten(resolver) == text


def test_unresolved_reference_left_unchanged(store, resolver):
    text = "a{background:url(/missing.png)}"
    add_css(store, text)
    assert rewritten(resolver) == text
    assert resolver.warnings[-1].kind == REFERENCE_UNRESOLVED


def test_harvested_external_image(store, resolver, harvester, session):
    session.routes["https://cdn.other.com/bg.png"] = FakeResponse(200, PNG_BYTES)
    add_css(store, "a{background:url(https://cdn.other.com/bg.png)}")
    assert prescan_stylesheets(resolver) == 1
    harvester.harvest(store)
    assert store.get("external_images/bg.png").content_type == "image/png"
    assert rewritten(resolver) == "a{background:url('../external_images/bg.png')}"


def test_failed_external_image_left_unchanged(store, resolver, harvester):
    text = "a{background:url(https://cdn.other.com/bg.png)}"
    add_css(store, text)
    prescan_stylesheets(resolver)
    assert harvester.harvest(store) == 0
    assert rewritten(resolver) == text
    assert harvester.warnings[0].kind == EXTERNAL_FETCH_FAILURE
    assert "external_images/bg.png" not in store


def test_prescan_only_queues_missing_off_origin(store, resolver, harvester):
    add_css(
        store,
        "a{background:url(https://example.com/local.png)}"
        "b{background:url(https://cdn.other.com/stored.png)}"
        "c{background:url(//cdn.other.com/new.png)}",
    )
    store.insert("stored.png", resource())
    assert prescan_stylesheets(resolver) == 1
    assert [request.url for request in harvester.requests] == ["https://cdn.other.com/new.png"]


def test_non_stylesheets_are_skipped(store, resolver):
    store.insert("app.js", resource(b"x = 'url(/a.png)'", "application/javascript"))
    assert rewrite_stylesheets(resolver) == {}


def test_undecodable_stylesheet_is_reported(store, resolver):
    store.insert("broken.css", resource(b"\xff\xfe\xfa", "text/css"))
    assert rewrite_stylesheets(resolver) == {}
    assert resolver.warnings[-1].kind == CAPTURE_DECODE_FAILURE


def test_quoted_url_containing_parenthesis(store, resolver):
    add_css(store, 'a{background:url("img/a(1).png")} b{background:url( \'img/b.png\' )}')
    store.insert("css/img/a(1).png", resource())
    store.insert("css/img/b.png", resource())
    assert rewritten(resolver) == "a{background:url('img/a(1).png')} b{background:url('img/b.png')}"
