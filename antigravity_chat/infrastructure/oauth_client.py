"""Google OAuth Client: code exchange, refresh, and post-login enrichment.

Invariants:
    - exchange_code / refresh_access_token issue exactly one form POST each
    - expires_at_ms = now + expires_in - TOKEN_EXPIRY_BUFFER_MS
    - refresh never rotates the refresh token
    - fetch_user_email never raises: any failure returns None
    - fetch_project_id never raises: every endpoint failing yields DEFAULT_PROJECT_ID

Design Decisions:
    - httpx.AsyncClient injected: tests swap in httpx.MockTransport
    - Clock injected (seconds, like time.time) so expiry math is deterministic in tests
"""

import json
import logging
import time
from collections.abc import Callable

import httpx

from antigravity_chat.constants import (
    CLIENT_ID,
    CLIENT_METADATA,
    CLIENT_SECRET,
    CODE_ASSIST_ENDPOINTS,
    DEFAULT_PROJECT_ID,
    GOOG_API_CLIENT,
    LOAD_CODE_ASSIST_PATH,
    REDIRECT_URI,
    TOKEN_EXPIRY_BUFFER_MS,
    TOKEN_URL,
    USERINFO_URL,
)
from antigravity_chat.core.errors import TokenExchangeError, TokenRefreshError
from antigravity_chat.schemas.auth import TokenExchangeResult, TokenRefreshResult

logger = logging.getLogger(__name__)

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class GoogleOAuthClient:
    """Token endpoint + enrichment calls for the installed-app client."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
        project_endpoints: tuple[str, ...] = CODE_ASSIST_ENDPOINTS,
    ):
        self.http = http
        self.clock = clock
        self.project_endpoints = project_endpoints

    def _expires_at_ms(self, expires_in) -> int:
        seconds = expires_in if isinstance(expires_in, (int, float)) else 0
        return int(self.clock() * 1000 + seconds * 1000 - TOKEN_EXPIRY_BUFFER_MS)

    async def exchange_code(self, code: str, verifier: str) -> TokenExchangeResult:
        form = {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": REDIRECT_URI,
            "code_verifier": verifier,
        }
        data = await self._post_token(form, TokenExchangeError)
        access = str(data.get("access_token") or "").strip()
        refresh = str(data.get("refresh_token") or "").strip()
        if not access:
            raise TokenExchangeError("response contained no access_token")
        if not refresh:
            raise TokenExchangeError("response contained no refresh_token")
        return TokenExchangeResult(
            access_token=access,
            refresh_token=refresh,
            expires_at_ms=self._expires_at_ms(data.get("expires_in")),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenRefreshResult:
        form = {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        data = await self._post_token(form, TokenRefreshError)
        access = str(data.get("access_token") or "").strip()
        if not access:
            raise TokenRefreshError("response contained no access_token")
        return TokenRefreshResult(
            access_token=access,
            expires_at_ms=self._expires_at_ms(data.get("expires_in")),
        )

    async def _post_token(self, form: dict, error_cls) -> dict:
        try:
            res = await self.http.post(TOKEN_URL, data=form, headers=_FORM_HEADERS)
        except httpx.HTTPError as e:
            raise error_cls(f"network error: {e}") from e
        if not res.is_success:
            raise error_cls(f"HTTP {res.status_code}: {res.text}")
        try:
            data = res.json()
        except ValueError as e:
            raise error_cls("token endpoint returned invalid JSON") from e
        if not isinstance(data, dict):
            raise error_cls("token endpoint returned unexpected payload")
        return data

    async def fetch_user_email(self, access_token: str) -> str | None:
        """Best-effort lookup. Contract: swallow every failure and return None."""
        try:
            res = await self.http.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"},
            )
            if not res.is_success:
                return None
            email = res.json().get("email")
            return email if isinstance(email, str) and email else None
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.debug("User email lookup failed: %s", e)
            return None

    async def fetch_project_id(self, access_token: str) -> str:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "User-Agent": "google-api-nodejs-client/9.15.1",
            "X-Goog-Api-Client": GOOG_API_CLIENT,
            "Client-Metadata": json.dumps(CLIENT_METADATA),
        }
        body = {"metadata": CLIENT_METADATA}

        for endpoint in self.project_endpoints:
            try:
                res = await self.http.post(
                    f"{endpoint}{LOAD_CODE_ASSIST_PATH}", json=body, headers=headers,
                )
                if not res.is_success:
                    logger.info(
                        "loadCodeAssist failed at %s", endpoint,
                        extra={"status_code": res.status_code},
                    )
                    continue
                project = _extract_project(res.json())
                if project:
                    return project
            except (httpx.HTTPError, ValueError) as e:
                logger.info("loadCodeAssist error at %s: %s", endpoint, e)

        logger.warning("Project discovery failed; using default project")
        return DEFAULT_PROJECT_ID


def _extract_project(data) -> str | None:
    if not isinstance(data, dict):
        return None
    project = data.get("cloudaicompanionProject")
    if isinstance(project, str) and project:
        return project
    if isinstance(project, dict) and project.get("id"):
        return str(project["id"])
    return None
