"""Login Flow: OAuth Authorization Code + PKCE state machine, end to end.

Invariants:
    - Stages advance in LoginStage order; every failure path ends in FAILED
    - A returned state that differs from the generated one (exact, case-sensitive)
      aborts before any code exchange
    - The callback listener is closed on every path
    - Email lookup never fails the flow; project discovery always yields an id
    - Credentials are persisted only after exchange and enrichment succeed

Design Decisions:
    - Browser opener, listener factory and stage observer injected: the CLI renders
      progress, tests drive the machine without a browser or a fixed port
    - auth_url is exposed as soon as it is built so callers can print it for manual
      use when the browser or the listener is unavailable
"""

import logging
import webbrowser
from collections.abc import Callable
from urllib.parse import parse_qs, urlparse

from antigravity_chat.core.domain_types import LoginStage
from antigravity_chat.core.errors import (
    AuthError,
    CallbackTimeoutError,
    MissingCodeError,
    StateMismatchError,
)
from antigravity_chat.core.pkce import build_authorization_url, generate_pkce, generate_state
from antigravity_chat.infrastructure.callback_server import CallbackListener
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.infrastructure.oauth_client import GoogleOAuthClient
from antigravity_chat.schemas.auth import TokenState

logger = logging.getLogger(__name__)


def extract_code(callback_url: str, expected_state: str) -> str:
    """Validate state, then return the authorization code from a redirect URL."""
    params = parse_qs(urlparse(callback_url).query)
    returned_state = (params.get("state") or [None])[0]
    if returned_state != expected_state:
        raise StateMismatchError()
    code = (params.get("code") or [""])[0]
    if not code:
        raise MissingCodeError()
    return code


class LoginFlow:
    """One interactive login attempt."""

    def __init__(
        self,
        oauth: GoogleOAuthClient,
        store: CredentialStore,
        timeout_seconds: float = 300.0,
        listener_factory: Callable[[], CallbackListener] = CallbackListener,
        open_browser: Callable[[str], bool] = webbrowser.open,
        on_stage: Callable[[LoginStage], None] | None = None,
    ):
        self.oauth = oauth
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.listener_factory = listener_factory
        self.open_browser = open_browser
        self.on_stage = on_stage
        self.stage = LoginStage.IDLE
        self.auth_url: str | None = None
        self.browser_opened = False

    def _advance(self, stage: LoginStage) -> None:
        self.stage = stage
        logger.info("Login stage: %s", stage.value, extra={"login_stage": stage.value})
        if self.on_stage:
            self.on_stage(stage)

    async def run(self) -> TokenState:
        """Drive the full flow. Raises AuthError (stage ends in FAILED)."""
        try:
            return await self._run()
        except CallbackTimeoutError:
            self._advance(LoginStage.TIMED_OUT)
            self._advance(LoginStage.FAILED)
            raise
        except StateMismatchError:
            logger.warning("OAuth state mismatch; refusing to exchange code")
            self._advance(LoginStage.STATE_MISMATCH)
            self._advance(LoginStage.FAILED)
            raise
        except MissingCodeError:
            self._advance(LoginStage.NO_CODE)
            self._advance(LoginStage.FAILED)
            raise
        except AuthError:
            self._advance(LoginStage.FAILED)
            raise

    async def _run(self) -> TokenState:
        pkce = generate_pkce()
        state = generate_state()
        self.auth_url = build_authorization_url(pkce.challenge, state)
        self._advance(LoginStage.PKCE_GENERATED)

        listener = self.listener_factory()
        try:
            async with listener:
                self._advance(LoginStage.LISTENER_STARTED)
                self.browser_opened = bool(self.open_browser(self.auth_url))
                self._advance(LoginStage.BROWSER_OPENED)
                self._advance(LoginStage.AWAITING_CALLBACK)
                callback_url = await listener.wait_for_callback(self.timeout_seconds)
        except OSError as e:
            # Only a failed bind is a listener problem; later OSErrors propagate
            if self.stage is not LoginStage.PKCE_GENERATED:
                raise
            raise AuthError(
                f"Could not start callback listener on port {listener.port}: {e}",
                "LISTENER_UNAVAILABLE",
            ) from e

        code = extract_code(callback_url, state)
        self._advance(LoginStage.CODE_RECEIVED)

        self._advance(LoginStage.EXCHANGING)
        exchanged = await self.oauth.exchange_code(code, pkce.verifier)

        self._advance(LoginStage.ENRICHING)
        email = await self.oauth.fetch_user_email(exchanged.access_token)
        project_id = await self.oauth.fetch_project_id(exchanged.access_token)

        tokens = TokenState(
            access_token=exchanged.access_token,
            refresh_token=exchanged.refresh_token,
            expires_at_ms=exchanged.expires_at_ms,
            email=email,
            project_id=project_id,
        )
        self.store.save(tokens)
        self._advance(LoginStage.PERSISTED)
        return tokens
