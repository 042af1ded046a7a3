"""PKCE: verifier/challenge generation and authorization URL construction.

Invariants:
    - challenge == base64url(sha256(verifier)) with padding stripped
    - Verifier carries 256 bits of entropy (32 random bytes, hex encoded)
    - build_authorization_url is deterministic for a given (challenge, state)
"""

import base64
import hashlib
import secrets
from urllib.parse import urlencode

from antigravity_chat.constants import AUTH_URL, CLIENT_ID, REDIRECT_URI, SCOPES
from antigravity_chat.schemas.auth import PkceChallenge


def compute_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> PkceChallenge:
    verifier = secrets.token_hex(32)
    return PkceChallenge(verifier=verifier, challenge=compute_challenge(verifier))


def generate_state() -> str:
    """Anti-CSRF nonce echoed back by the provider."""
    return secrets.token_hex(16)


def build_authorization_url(challenge: str, state: str) -> str:
    params = {
        "client_id": CLIENT_ID,
        "response_type": "code",
        "redirect_uri": REDIRECT_URI,
        "scope": " ".join(SCOPES),
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "state": state,
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{AUTH_URL}?{urlencode(params)}"
