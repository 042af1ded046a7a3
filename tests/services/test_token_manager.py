"""Token Manager tests: load, expiry-driven refresh, forced refresh."""

import pytest

from antigravity_chat.core.errors import NotAuthenticatedError, TokenRefreshError
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.schemas.auth import TokenRefreshResult, TokenState
from antigravity_chat.services.token_manager import TokenManager

NOW_MS = 1_700_000_000_000


class _FakeOAuth:
    def __init__(self, error=None):
        self.error = error
        self.refreshed_with = []

    async def refresh_access_token(self, refresh_token):
        self.refreshed_with.append(refresh_token)
        if self.error:
            raise self.error
        return TokenRefreshResult(access_token="ya29.new", expires_at_ms=NOW_MS + 3_000_000)


def _manager(tmp_path, expires_at_ms, oauth=None):
    store = CredentialStore(tmp_path / "tokens.json")
    store.save(TokenState(
        access_token="ya29.old", refresh_token="1//r", expires_at_ms=expires_at_ms,
        email="dev@example.com", project_id="proj",
    ))
    oauth = oauth or _FakeOAuth()
    return TokenManager(store, oauth, clock=lambda: NOW_MS / 1000), store, oauth


async def test_valid_tokens_returned_without_refresh(tmp_path):
    manager, _, oauth = _manager(tmp_path, NOW_MS + 60_000)
    tokens = await manager.get_valid_tokens()
    assert tokens.access_token == "ya29.old"
    assert oauth.refreshed_with == []


async def test_expired_tokens_refreshed_and_persisted(tmp_path):
    manager, store, oauth = _manager(tmp_path, NOW_MS)
    tokens = await manager.get_valid_tokens()

    assert oauth.refreshed_with == ["1//r"]
    assert tokens.access_token == "ya29.new"
    assert tokens.refresh_token == "1//r"
    assert tokens.email == "dev@example.com"
    assert store.load() == tokens


async def test_force_refresh_ignores_expiry(tmp_path):
    manager, _, oauth = _manager(tmp_path, NOW_MS + 60_000)
    tokens = await manager.force_refresh()
    assert tokens.access_token == "ya29.new"
    assert len(oauth.refreshed_with) == 1


async def test_missing_credentials(tmp_path):
    manager = TokenManager(CredentialStore(tmp_path / "none.json"), _FakeOAuth())
    with pytest.raises(NotAuthenticatedError):
        await manager.get_valid_tokens()


async def test_refresh_failure_leaves_file_untouched(tmp_path):
    manager, store, _ = _manager(
        tmp_path, NOW_MS, oauth=_FakeOAuth(error=TokenRefreshError("HTTP 400")),
    )
    with pytest.raises(TokenRefreshError):
        await manager.get_valid_tokens()
    assert store.load().access_token == "ya29.old"
