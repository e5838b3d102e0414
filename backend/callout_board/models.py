from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .enums import CallOutStatus, ResourceCategory


# In-memory records owned by EntityStore. Callers only ever see schema copies.
@dataclass
class CallOut:
    id: str
    name: str
    status: CallOutStatus
    created_at: datetime
    latitude: float | None = None
    longitude: float | None = None
    grid_reference: str | None = None
    assigned_resources: list[str] = field(default_factory=list)


@dataclass
class Resource:
    id: str
    name: str
    category: ResourceCategory
