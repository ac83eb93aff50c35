"""Shared fixtures for the engine tests."""

import pytest

from promptsmith.store import InMemoryContentResolver

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "PROMPTSMITH_OPENAI_API_KEY",
    "PROMPTSMITH_ANTHROPIC_API_KEY",
    "PROMPTSMITH_OPENROUTER_API_KEY",
    "PROMPTSMITH_LOG_LEVEL",
    "PROMPTSMITH_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep real API keys and a local .env out of every test."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def resolver():
    store = InMemoryContentResolver()
    store.add("greeting", "1.0.0", "Hello, {{ name }}!")
    return store
