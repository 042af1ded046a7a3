"""Root conftest: shared test configuration."""

import os

import pytest

from antigravity_chat.config import get_settings

# Search keys from the developer's shell must not pick a provider during tests
_PROVIDER_ENV = (
    "WEB_SEARCH_PROVIDER", "BRAVE_API_KEY", "PERPLEXITY_API_KEY",
    "OPENROUTER_API_KEY", "PERPLEXITY_MODEL", "XAI_API_KEY", "GROK_MODEL",
)
for _key in _PROVIDER_ENV:
    os.environ.pop(_key, None)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
