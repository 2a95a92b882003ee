import asyncio

import pytest

from conftest import FakeAdapter, make_png
from priordeed import service
from priordeed.adapters.registry import AdapterRegistry
from priordeed.config import Settings
from priordeed.exceptions import JurisdictionLookupError
from priordeed.models import DeedAsset, FailureStage


class FakeSession:
    instances = []

    def __init__(self, settings=None):
        self.settings = settings
        self.started = False
        self.closed = False
        FakeSession.instances.append(self)

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_session(monkeypatch):
    FakeSession.instances = []
    monkeypatch.setattr(service, "BrowserSession", FakeSession)
    return FakeSession


@pytest.fixture
def registry():
    registry = AdapterRegistry()
    registry.register("Springfield", "XX", lambda: FakeAdapter(owner_asset=DeedAsset(buffers=(make_png(),))))
    return registry


def _fetch(address, registry, **kwargs):
    return asyncio.run(service.fetch_prior_deed(address, settings=Settings(), registry=registry, **kwargs))


def test_explicit_county_runs_the_adapter(fake_session, registry):
    result = _fetch("123 Main St, Springfield, XX", registry, county="springfield county", state="xx")

    assert result.success
    assert result.filename == "springfield_xx_deed_owner_search.pdf"
    session = fake_session.instances[0]
    assert session.started and session.closed


def test_county_comes_from_the_geocoder(monkeypatch, fake_session, registry):
    seen = []

    def fake_locate(address, user_agent=None):
        seen.append(address)
        return "Springfield", "XX"

    monkeypatch.setattr(service, "locate_jurisdiction", fake_locate)

    assert _fetch("123 Main St, Springfield, XX", registry).success
    assert seen == ["123 Main St, Springfield, XX"]


def test_unroutable_address_is_identity_failure(monkeypatch, fake_session, registry):
    def fake_locate(address, user_agent=None):
        raise JurisdictionLookupError("no geocoder match")

    monkeypatch.setattr(service, "locate_jurisdiction", fake_locate)

    result = _fetch("nowhere", registry)

    assert result.failure_stage is FailureStage.IDENTITY
    assert "no geocoder match" in result.error
    assert fake_session.instances == []


def test_unsupported_county_is_identity_failure(fake_session, registry):
    result = _fetch("1 Main St, Shelbyville, YY", registry, county="Shelbyville", state="YY")

    assert result.failure_stage is FailureStage.IDENTITY
    assert 'County "Shelbyville, YY" is not yet supported' in result.error


def test_blank_address_is_identity_failure(fake_session, registry):
    result = _fetch("   ", registry, county="Springfield", state="XX")

    assert not result.success
    assert result.failure_stage is FailureStage.IDENTITY


def test_session_closed_when_adapter_fails(fake_session):
    registry = AdapterRegistry()
    registry.register("Springfield", "XX", lambda: FakeAdapter(identity_error=RuntimeError("site down")))

    result = _fetch("123 Main St", registry, county="Springfield", state="XX")

    assert result.failure_stage is FailureStage.IDENTITY
    assert fake_session.instances[0].closed
