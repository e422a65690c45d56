"""Shared fixtures: fresh store, hub, fake provider and relay per test."""

import pytest

from botchat.api.app import app, get_hub, get_relay, get_repository
from botchat.services.hub import SubscriptionHub
from botchat.services.relay import RelayEngine

from support import FakeCompletionClient, RecordingRepository


@pytest.fixture(autouse=True)
def provider_env(monkeypatch):
    """Known provider environment: a fallback key and nothing else."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("OPENAI_API_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_HEADERS", raising=False)


@pytest.fixture
def repository():
    return RecordingRepository()


@pytest.fixture
def hub():
    return SubscriptionHub()


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture
def relay(repository, fake_client, hub):
    return RelayEngine(repository, fake_client, hub)


@pytest.fixture
def api(repository, hub, relay):
    """Route the app's dependencies to this test's instances."""
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_hub] = lambda: hub
    app.dependency_overrides[get_relay] = lambda: relay
    yield app
    app.dependency_overrides.clear()
