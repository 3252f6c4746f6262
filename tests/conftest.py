"""Shared fixtures: an in-memory store, a fake HTTP session and a resolver."""

import pytest

from pagepack.images import ExternalAssetHarvester
from pagepack.resolver import ReferenceResolver
from pagepack.store import ResourceStore

from .fakes import PAGE_URL, FakeSession


@pytest.fixture
def store():
    return ResourceStore()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def harvester(session):
    return ExternalAssetHarvester(session=session, max_workers=2)


@pytest.fixture
def resolver(store, harvester):
    return ReferenceResolver(store, harvester, PAGE_URL)
