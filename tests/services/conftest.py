"""Service test fixtures: a fresh ChatSession plus fake collaborators.

Invariants:
    - Every test gets its own session, token manager and dispatch fake
    - No network: the runner only ever sees MockCodeAssistClient

Design Decisions:
    - Fakes injected through constructors, not monkeypatch: AgentRunner takes its
      collaborators as arguments
"""

import pytest

from antigravity_chat.core.session_state import ChatSession

from tests.services.mock_code_assist import FakeDispatch, FakeTokenManager


@pytest.fixture
def chat_session():
    return ChatSession(model_id="gemini-3-pro", system_prompt="You are helpful.")


@pytest.fixture
def token_manager():
    return FakeTokenManager()


@pytest.fixture
def dispatch():
    return FakeDispatch()
