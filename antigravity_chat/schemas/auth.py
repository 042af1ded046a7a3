"""Auth Schemas: persisted token state and OAuth intermediate results.

Invariants:
    - TokenState serializes to the on-disk shape {access, refresh, expires, email?, projectId}
    - expires_at_ms already has TOKEN_EXPIRY_BUFFER_MS subtracted (never re-applied on load)
    - PkceChallenge is never persisted

Design Decisions:
    - Field aliases carry the file format; Python code uses snake_case names
    - populate_by_name: tests and services construct with either spelling
"""

from pydantic import BaseModel, ConfigDict, Field


class TokenState(BaseModel):
    """Credential file contents."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="access")
    refresh_token: str = Field(alias="refresh")
    expires_at_ms: int = Field(alias="expires")
    email: str | None = None
    project_id: str = Field(alias="projectId")

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at_ms

    def to_file_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PkceChallenge(BaseModel):
    """Verifier + S256 challenge for one login attempt."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str


class TokenExchangeResult(BaseModel):
    """Tokens minted from an authorization code."""
    access_token: str
    refresh_token: str
    expires_at_ms: int


class TokenRefreshResult(BaseModel):
    """New access token; the refresh token is not rotated."""
    access_token: str
    expires_at_ms: int
