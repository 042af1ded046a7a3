"""Token Manager: hands out a usable access token, refreshing and persisting as needed.

Invariants:
    - No credentials on disk -> NotAuthenticatedError
    - An expired access token is refreshed once and the result persisted before use
    - force_refresh() always hits the token endpoint (used after an HTTP 401)
    - The refresh token, email and project id are carried over unchanged

Design Decisions:
    - Load-mutate-persist with no locking: single-process client
"""

import logging
import time
from collections.abc import Callable

from antigravity_chat.core.errors import NotAuthenticatedError
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.infrastructure.oauth_client import GoogleOAuthClient
from antigravity_chat.schemas.auth import TokenState

logger = logging.getLogger(__name__)


class TokenManager:
    """Credential Store + OAuth refresh behind one call."""

    def __init__(
        self,
        store: CredentialStore,
        oauth: GoogleOAuthClient,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.oauth = oauth
        self.clock = clock

    def _load(self) -> TokenState:
        tokens = self.store.load()
        if tokens is None:
            raise NotAuthenticatedError()
        return tokens

    async def get_valid_tokens(self) -> TokenState:
        tokens = self._load()
        if not tokens.is_expired(int(self.clock() * 1000)):
            return tokens
        logger.info("Access token expired; refreshing")
        return await self._refresh(tokens)

    async def force_refresh(self) -> TokenState:
        return await self._refresh(self._load())

    async def _refresh(self, tokens: TokenState) -> TokenState:
        result = await self.oauth.refresh_access_token(tokens.refresh_token)
        updated = tokens.model_copy(update={
            "access_token": result.access_token,
            "expires_at_ms": result.expires_at_ms,
        })
        self.store.save(updated)
        return updated
