from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class StoreError(Exception):
    """Base class for errors surfaced by the store to its callers."""


class ValidationError(StoreError):
    def __init__(self, detail: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.errors = errors or []


class NotFoundError(StoreError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id
        self.detail = f"{entity} not found"


@dataclass(frozen=True)
class IntegrityWarning:
    """A tolerated dangling reference. Reported and logged, never raised."""

    callout_id: str
    resource_id: str
    reason: str


UNKNOWN_RESOURCE_REASON = "unknown_resource"
DELETED_RESOURCE_REASON = "deleted_resource"
