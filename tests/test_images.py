"""Tests for the external asset harvester."""

import re

import pytest
import requests

from pagepack.errors import EXTERNAL_FETCH_FAILURE, ExternalFetchFailure
from pagepack.images import ExternalAssetHarvester, external_image_path
from pagepack.models import ExternalAssetRequest

from .fakes import PNG_BYTES, FakeResponse, FakeSession


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://cdn.other.com/pics/cat", "external_images/cat.jpg"),
        ("https://cdn.other.com/pics/cat.webp?w=100", "external_images/cat.webp"),
        ("https://cdn.other.com/", "external_images/image.jpg"),
        ("https://cdn.other.com/a%3Ab.png", "external_images/a_b.png"),
    ],
)
def test_external_image_path(url, expected):
    assert external_image_path(url) == expected


class TestReserve:
    def test_same_url_reserved_once(self, harvester):
        first = harvester.reserve("https://cdn.other.com/cat.png")
        second = harvester.reserve("https://cdn.other.com/cat.png")
        assert first == second == "external_images/cat.png"
        assert len(harvester.requests) == 1

    def test_same_name_from_different_hosts(self, harvester):
        first = harvester.reserve("https://a.other.com/cat.png")
        second = harvester.reserve("https://b.other.com/cat.png")
        assert first == "external_images/cat.png"
        assert re.fullmatch(r"external_images/cat_[0-9a-f]{8}\.png", second)

    def test_explicit_local_path(self, harvester):
        path = harvester.reserve("https://example.com/photo.png", "photo.png")
        assert path == "photo.png"
        assert harvester.local_path_for("https://example.com/photo.png") == "photo.png"


class TestFetch:
    def test_content_type_from_header(self):
        session = FakeSession(
            {"https://cdn/x.gif": FakeResponse(200, b"GIF89a...", {"Content-Type": "image/gif"})}
        )
        harvester = ExternalAssetHarvester(session=session)
        fetched = harvester.fetch(ExternalAssetRequest("https://cdn/x.gif", "external_images/x.gif"))
        assert fetched.content_type == "image/gif"
        assert fetched.source_url == "https://cdn/x.gif"

    def test_content_type_sniffed(self):
        session = FakeSession({"https://cdn/x": FakeResponse(200, PNG_BYTES)})
        harvester = ExternalAssetHarvester(session=session)
        fetched = harvester.fetch(ExternalAssetRequest("https://cdn/x", "external_images/x.jpg"))
        assert fetched.content_type == "image/png"

    def test_unknown_content_defaults_to_jpeg(self):
        session = FakeSession({"https://cdn/x": FakeResponse(200, b"not an image")})
        harvester = ExternalAssetHarvester(session=session)
        fetched = harvester.fetch(ExternalAssetRequest("https://cdn/x", "external_images/x.jpg"))
        assert fetched.content_type == "image/jpeg"

    @pytest.mark.parametrize(
        "outcome",
        [FakeResponse(404), FakeResponse(200, b""), requests.Timeout("slow")],
    )
    def test_failures_raise(self, outcome):
        harvester = ExternalAssetHarvester(session=FakeSession({"https://cdn/x": outcome}))
        with pytest.raises(ExternalFetchFailure) as excinfo:
            harvester.fetch(ExternalAssetRequest("https://cdn/x", "external_images/x.jpg"))
        assert excinfo.value.url == "https://cdn/x"


class TestHarvest:
    def test_successful_downloads_are_stored(self, store, harvester, session):
        session.routes["https://cdn.other.com/a.png"] = FakeResponse(200, PNG_BYTES)
        session.routes["https://cdn.other.com/b.png"] = FakeResponse(200, PNG_BYTES)
        harvester.reserve("https://cdn.other.com/a.png")
        harvester.reserve("https://cdn.other.com/b.png")
        progress = []
        assert harvester.harvest(store, lambda done, total: progress.append((done, total))) == 2
        assert "external_images/a.png" in store
        assert "external_images/b.png" in store
        assert progress[-1] == (2, 2)

    def test_failed_download_is_dropped(self, store, harvester, session):
        session.routes["https://cdn.other.com/a.png"] = FakeResponse(404)
        harvester.reserve("https://cdn.other.com/a.png")
        assert harvester.harvest(store) == 0
        assert harvester.requests == []
        assert harvester.warnings[0].kind == EXTERNAL_FETCH_FAILURE
        assert len(store) == 0

    def test_requests_are_attempted_once(self, store, harvester, session):
        session.routes["https://cdn.other.com/a.png"] = FakeResponse(200, PNG_BYTES)
        harvester.reserve("https://cdn.other.com/a.png")
        harvester.harvest(store)
        harvester.reserve("https://cdn.other.com/c.png")
        harvester.harvest(store)
        assert session.calls == ["https://cdn.other.com/a.png", "https://cdn.other.com/c.png"]
        assert harvester.pending == []

    def test_works_after_store_settled(self, store, harvester, session):
        session.routes["https://cdn.other.com/a.png"] = FakeResponse(200, PNG_BYTES)
        harvester.reserve("https://cdn.other.com/a.png")
        store.settle()
        assert harvester.harvest(store) == 1

    def test_nothing_pending(self, store, harvester, session):
        assert harvester.harvest(store) == 0
        assert session.calls == []
