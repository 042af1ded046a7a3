"""Login Flow tests: the OAuth state machine with a fake listener and fake OAuth client.

Tests cover:
    - Happy path walks every stage in order and persists tokens
    - State mismatch never reaches the code exchange
    - Missing code, timeout, busy port, and exchange failure end in FAILED
    - Email lookup failure still logs in with email None
"""

from urllib.parse import parse_qs, urlparse

import pytest

from antigravity_chat.core.domain_types import LoginStage
from antigravity_chat.core.errors import (
    AuthError,
    CallbackTimeoutError,
    MissingCodeError,
    StateMismatchError,
    TokenExchangeError,
)
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.schemas.auth import TokenExchangeResult
from antigravity_chat.services.login_flow import LoginFlow, extract_code


class _FakeListener:
    """Answers wait_for_callback with a URL built from the flow's state."""

    def __init__(self, flow_ref, mode="ok"):
        self.flow_ref = flow_ref
        self.mode = mode
        self.port = 51121
        self.closed = 0

    async def start(self):
        if self.mode == "busy":
            raise OSError("Address already in use")

    async def wait_for_callback(self, timeout):
        if self.mode == "timeout":
            raise CallbackTimeoutError(timeout)
        state = _state_of(self.flow_ref[0].auth_url)
        if self.mode == "bad_state":
            state = "forged"
        code = "" if self.mode == "no_code" else "auth-code"
        return f"http://localhost:51121/oauth-callback?code={code}&state={state}"

    async def close(self):
        self.closed += 1

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()


def _state_of(url):
    return parse_qs(urlparse(url).query)["state"][0]


class _FakeOAuth:
    def __init__(self, email="dev@example.com", exchange_error=None):
        self.email = email
        self.exchange_error = exchange_error
        self.exchanged = []

    async def exchange_code(self, code, verifier):
        self.exchanged.append((code, verifier))
        if self.exchange_error:
            raise self.exchange_error
        return TokenExchangeResult(access_token="ya29.a", refresh_token="1//r", expires_at_ms=99)

    async def fetch_user_email(self, access_token):
        return self.email

    async def fetch_project_id(self, access_token):
        return "proj-1"


def _flow(tmp_path, mode="ok", oauth=None):
    ref = []
    stages = []
    opened = []
    listeners = []

    def factory():
        listener = _FakeListener(ref, mode)
        listeners.append(listener)
        return listener

    flow = LoginFlow(
        oauth or _FakeOAuth(),
        CredentialStore(tmp_path / "tokens.json"),
        timeout_seconds=1,
        listener_factory=factory,
        open_browser=lambda url: opened.append(url) or True,
        on_stage=stages.append,
    )
    ref.append(flow)
    return flow, stages, opened, listeners


# -- extract_code --------------------------------------------------------------

def test_extract_code_checks_state_first():
    with pytest.raises(StateMismatchError):
        extract_code("http://localhost/cb?state=other", "expected")
    with pytest.raises(MissingCodeError):
        extract_code("http://localhost/cb?state=expected", "expected")
    assert extract_code("http://localhost/cb?code=abc&state=expected", "expected") == "abc"


# -- LoginFlow -----------------------------------------------------------------

async def test_happy_path_persists_tokens(tmp_path):
    flow, stages, opened, listeners = _flow(tmp_path)

    tokens = await flow.run()

    assert stages == [
        LoginStage.PKCE_GENERATED, LoginStage.LISTENER_STARTED,
        LoginStage.BROWSER_OPENED, LoginStage.AWAITING_CALLBACK,
        LoginStage.CODE_RECEIVED, LoginStage.EXCHANGING,
        LoginStage.ENRICHING, LoginStage.PERSISTED,
    ]
    assert opened == [flow.auth_url]
    assert flow.browser_opened is True
    assert listeners[0].closed == 1
    assert tokens.email == "dev@example.com"
    assert tokens.project_id == "proj-1"
    assert CredentialStore(tmp_path / "tokens.json").load() == tokens


async def test_state_mismatch_never_exchanges(tmp_path):
    oauth = _FakeOAuth()
    flow, stages, _, _ = _flow(tmp_path, "bad_state", oauth)

    with pytest.raises(StateMismatchError):
        await flow.run()

    assert oauth.exchanged == []
    assert stages[-2:] == [LoginStage.STATE_MISMATCH, LoginStage.FAILED]
    assert not (tmp_path / "tokens.json").exists()


async def test_missing_code(tmp_path):
    flow, stages, _, _ = _flow(tmp_path, "no_code")
    with pytest.raises(MissingCodeError):
        await flow.run()
    assert stages[-2:] == [LoginStage.NO_CODE, LoginStage.FAILED]


async def test_timeout(tmp_path):
    flow, stages, _, listeners = _flow(tmp_path, "timeout")
    with pytest.raises(CallbackTimeoutError):
        await flow.run()
    assert stages[-2:] == [LoginStage.TIMED_OUT, LoginStage.FAILED]
    assert listeners[0].closed == 1


async def test_busy_port(tmp_path):
    flow, stages, opened, _ = _flow(tmp_path, "busy")
    with pytest.raises(AuthError) as exc:
        await flow.run()
    assert exc.value.code == "LISTENER_UNAVAILABLE"
    assert opened == []
    assert stages[-1] == LoginStage.FAILED


async def test_exchange_failure(tmp_path):
    oauth = _FakeOAuth(exchange_error=TokenExchangeError("HTTP 400: invalid_grant"))
    flow, stages, _, _ = _flow(tmp_path, oauth=oauth)
    with pytest.raises(TokenExchangeError):
        await flow.run()
    assert stages[-1] == LoginStage.FAILED
    assert oauth.exchanged[0][0] == "auth-code"


async def test_unknown_email_still_logs_in(tmp_path):
    flow, _, _, _ = _flow(tmp_path, oauth=_FakeOAuth(email=None))
    tokens = await flow.run()
    assert tokens.email is None


async def test_listener_closed_when_browser_launch_fails(tmp_path):
    flow, _, _, listeners = _flow(tmp_path)

    def broken_browser(url):
        raise RuntimeError("no display")

    flow.open_browser = broken_browser
    with pytest.raises(RuntimeError):
        await flow.run()
    assert listeners[0].closed == 1
