"""Model Directory: available models and quota for the signed-in account.

Invariants:
    - Ids starting with an internal prefix (chat_, tab_; case-insensitive) are excluded
    - Non-numeric or non-finite remainingFraction values are treated as missing
    - Output ordered by highest remaining quota first (missing = 1.0), then id
"""

import logging
import math
from typing import Any

from antigravity_chat.constants import EXCLUDED_MODEL_PREFIXES
from antigravity_chat.infrastructure.code_assist_client import CodeAssistClient
from antigravity_chat.schemas.auth import TokenState
from antigravity_chat.schemas.models import ModelDescriptor

logger = logging.getLogger(__name__)


def _quota_fraction(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def parse_available_models(payload: dict[str, Any]) -> list[ModelDescriptor]:
    """fetchAvailableModels response -> sorted caller-facing descriptors."""
    models = payload.get("models")
    if not isinstance(models, dict):
        return []

    descriptors = []
    for model_id, info in models.items():
        if model_id.lower().startswith(EXCLUDED_MODEL_PREFIXES):
            continue
        info = info if isinstance(info, dict) else {}
        quota = info.get("quotaInfo") if isinstance(info.get("quotaInfo"), dict) else {}
        reset = quota.get("resetTime")
        display = info.get("displayName")
        descriptors.append(ModelDescriptor(
            id=model_id,
            display_name=display if isinstance(display, str) else None,
            remaining_quota_fraction=_quota_fraction(quota.get("remainingFraction")),
            quota_reset_time=reset if isinstance(reset, str) else None,
        ))
    return sorted(descriptors, key=ModelDescriptor.sort_key)


def format_model_line(model: ModelDescriptor) -> str:
    """`id  (Display Name)  quota 75%` for pickers and /models."""
    parts = [model.id]
    if model.display_name and model.display_name != model.id:
        parts.append(f"({model.display_name})")
    if model.remaining_quota_fraction is not None:
        parts.append(f"quota {round(model.remaining_quota_fraction * 100)}%")
    return "  ".join(parts)


class ModelDirectory:
    """Fetches once per call; callers cache the snapshot for the session."""

    def __init__(self, client: CodeAssistClient):
        self.client = client

    async def list_models(self, tokens: TokenState) -> list[ModelDescriptor]:
        payload = await self.client.fetch_available_models(
            access_token=tokens.access_token, project_id=tokens.project_id,
        )
        models = parse_available_models(payload)
        logger.info("Fetched %d models", len(models))
        return models
