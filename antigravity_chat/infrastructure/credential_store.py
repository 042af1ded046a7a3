"""Credential Store: load/persist TokenState as a human-readable JSON file.

Invariants:
    - load() returns None for a missing or corrupt file (never raises)
    - save() rewrites the whole file by overwrite (temp file + os.replace)
    - The file holds a refresh token, so it is written owner-only (0600)
    - No network logic lives here

Design Decisions:
    - Read-then-write without locking: single-process, single-session client
"""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from antigravity_chat.schemas.auth import TokenState

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns the token file at `path`."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> TokenState | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return TokenState.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, e)
            return None

    def save(self, tokens: TokenState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.unlink(missing_ok=True)
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(tokens.to_file_dict(), indent=2) + "\n")
        os.replace(tmp, self.path)
        logger.debug("Credentials written to %s", self.path)
