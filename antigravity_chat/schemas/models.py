"""Model Schemas: snapshot of a model offered by fetchAvailableModels.

Invariants:
    - remaining_quota_fraction is None or a finite float (non-numeric values dropped)
    - sort_key orders by highest remaining quota first (None counts as full), then id
"""

from pydantic import BaseModel, ConfigDict


class ModelDescriptor(BaseModel):
    """Immutable per-session model snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str | None = None
    remaining_quota_fraction: float | None = None
    quota_reset_time: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.id

    def sort_key(self) -> tuple[float, str]:
        quota = 1.0 if self.remaining_quota_fraction is None else self.remaining_quota_fraction
        return (-quota, self.id)
