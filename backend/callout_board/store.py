from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from .broadcast import BroadcastChannel
from .enums import BroadcastEvent
from .errors import (
    DELETED_RESOURCE_REASON,
    UNKNOWN_RESOURCE_REASON,
    IntegrityWarning,
    NotFoundError,
    ValidationError,
)
from .models import CallOut, Resource
from .schemas import (
    CallOutCreate,
    CallOutRead,
    CallOutUpdate,
    ResourceCreate,
    ResourceRead,
    ResourceSeed,
    ResourceUpdate,
    dump_entity,
    parse_payload,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceListener(Protocol):
    def add_resource(self, resource_id: str) -> None: ...

    def remove_resource(self, resource_id: str) -> None: ...


@dataclass(frozen=True)
class StoreSnapshot:
    callouts: list[CallOutRead]
    resources: list[ResourceRead]
    seq: int


class EntityStore:
    """Single source of truth for call-outs and resources.

    Every read and write goes through ``self.lock``; the broadcast for a
    mutation is published before the lock is released, so subscribers see
    events in exactly the order mutations were applied. Records never leave
    the store: callers get schema copies.

    Resource listeners (the board) are told about every resource created or
    deleted while the lock is still held, right after the resource event, so
    their view of the resource set never lags the store.
    """

    def __init__(
        self,
        channel: BroadcastChannel | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        self.channel = channel if channel is not None else BroadcastChannel()
        self.lock = lock if lock is not None else threading.RLock()
        self._callouts: dict[str, CallOut] = {}
        self._resources: dict[str, Resource] = {}
        self._issued_ids: set[str] = set()
        self._resource_listeners: list[ResourceListener] = []

    def add_resource_listener(self, listener: ResourceListener) -> None:
        with self.lock:
            if listener not in self._resource_listeners:
                self._resource_listeners.append(listener)

    def _new_id(self) -> str:
        while True:
            candidate = str(uuid4())
            if candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate

    def _publish(self, event: BroadcastEvent, payload: dict[str, Any]) -> None:
        self.channel.publish(event, payload)

    def _get_callout_or_404(self, callout_id: str) -> CallOut:
        obj = self._callouts.get(callout_id)
        if obj is None:
            raise NotFoundError("Call-out", callout_id)
        return obj

    def _get_resource_or_404(self, resource_id: str) -> Resource:
        obj = self._resources.get(resource_id)
        if obj is None:
            raise NotFoundError("Resource", resource_id)
        return obj

    # --- Call-outs ---
    def create_callout(self, data: CallOutCreate | Mapping[str, Any]) -> CallOutRead:
        payload = parse_payload(CallOutCreate, data)
        with self.lock:
            obj = CallOut(
                id=self._new_id(),
                name=payload.name,
                status=payload.status,
                created_at=utcnow(),
                latitude=payload.latitude,
                longitude=payload.longitude,
                grid_reference=payload.grid_reference,
            )
            self._callouts[obj.id] = obj
            result = CallOutRead.model_validate(obj)
            self._publish(BroadcastEvent.CALLOUT_NEW, dump_entity(result))
        logger.debug("Created call-out %s", result.id)
        return result

    def list_callouts(self) -> list[CallOutRead]:
        with self.lock:
            return [CallOutRead.model_validate(obj) for obj in self._callouts.values()]

    def get_callout(self, callout_id: str) -> CallOutRead:
        with self.lock:
            return CallOutRead.model_validate(self._get_callout_or_404(callout_id))

    def update_callout(self, callout_id: str, data: CallOutUpdate | Mapping[str, Any]) -> CallOutRead:
        payload = parse_payload(CallOutUpdate, data)
        changes = payload.model_dump(exclude_unset=True)
        with self.lock:
            obj = self._get_callout_or_404(callout_id)
            changed = False
            for key, value in changes.items():
                if getattr(obj, key) != value:
                    setattr(obj, key, value)
                    changed = True
            result = CallOutRead.model_validate(obj)
            if changed:
                self._publish(BroadcastEvent.CALLOUT_UPDATE, dump_entity(result))
        return result

    def delete_callout(self, callout_id: str) -> None:
        with self.lock:
            self._get_callout_or_404(callout_id)
            del self._callouts[callout_id]
            self._publish(BroadcastEvent.CALLOUT_DELETE, {"id": callout_id})
        logger.debug("Deleted call-out %s", callout_id)

    def apply_assignment_change(
        self,
        callout_id: str,
        mutate: Callable[[list[str]], bool],
    ) -> CallOutRead:
        """Run ``mutate`` on a call-out's assignment list under the store lock.

        ``mutate`` returns whether it changed the list; ``callout:update`` is
        published only in that case.
        """
        with self.lock:
            obj = self._get_callout_or_404(callout_id)
            changed = mutate(obj.assigned_resources)
            result = CallOutRead.model_validate(obj)
            if changed:
                self._publish(BroadcastEvent.CALLOUT_UPDATE, dump_entity(result))
        return result

    # --- Resources ---
    def create_resource(self, data: ResourceCreate | Mapping[str, Any]) -> ResourceRead:
        payload = parse_payload(ResourceCreate, data)
        with self.lock:
            obj = Resource(id=self._new_id(), name=payload.name, category=payload.category)
            self._resources[obj.id] = obj
            result = ResourceRead.model_validate(obj)
            self._publish(BroadcastEvent.RESOURCE_NEW, dump_entity(result))
            for listener in self._resource_listeners:
                listener.add_resource(result.id)
        logger.debug("Created resource %s", result.id)
        return result

    def list_resources(self) -> list[ResourceRead]:
        with self.lock:
            return [ResourceRead.model_validate(obj) for obj in self._resources.values()]

    def get_resource(self, resource_id: str) -> ResourceRead:
        with self.lock:
            return ResourceRead.model_validate(self._get_resource_or_404(resource_id))

    def has_resource(self, resource_id: str) -> bool:
        with self.lock:
            return resource_id in self._resources

    def update_resource(self, resource_id: str, data: ResourceUpdate | Mapping[str, Any]) -> ResourceRead:
        payload = parse_payload(ResourceUpdate, data)
        changes = payload.model_dump(exclude_unset=True)
        with self.lock:
            obj = self._get_resource_or_404(resource_id)
            changed = False
            for key, value in changes.items():
                if getattr(obj, key) != value:
                    setattr(obj, key, value)
                    changed = True
            result = ResourceRead.model_validate(obj)
            if changed:
                self._publish(BroadcastEvent.RESOURCE_UPDATE, dump_entity(result))
        return result

    def delete_resource(self, resource_id: str) -> None:
        with self.lock:
            self._get_resource_or_404(resource_id)
            del self._resources[resource_id]
            # Assignments are left in place on purpose; they become dangling.
            referencing = [
                obj.id for obj in self._callouts.values() if resource_id in obj.assigned_resources
            ]
            self._publish(BroadcastEvent.RESOURCE_DELETE, {"id": resource_id})
            for listener in self._resource_listeners:
                listener.remove_resource(resource_id)
        for callout_id in referencing:
            logger.warning(
                "Deleted resource %s is still assigned to call-out %s",
                resource_id,
                callout_id,
            )

    def seed_resources(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Load startup resources without resource events. Bad records are skipped.

        Attached listeners still receive each inserted id.
        """
        inserted = 0
        with self.lock:
            for index, record in enumerate(records):
                try:
                    payload = parse_payload(ResourceSeed, record)
                except ValidationError as exc:
                    logger.warning("Skipping seed resource #%s: %s", index, exc.detail)
                    continue

                resource_id = payload.id or self._new_id()
                if resource_id in self._resources:
                    logger.warning("Skipping seed resource #%s: duplicate id %s", index, resource_id)
                    continue

                self._issued_ids.add(resource_id)
                self._resources[resource_id] = Resource(
                    id=resource_id,
                    name=payload.name,
                    category=payload.category,
                )
                for listener in self._resource_listeners:
                    listener.add_resource(resource_id)
                inserted += 1
        return inserted

    # --- Consistency helpers ---
    def snapshot(self) -> StoreSnapshot:
        with self.lock:
            return StoreSnapshot(
                callouts=self.list_callouts(),
                resources=self.list_resources(),
                seq=self.channel.last_seq,
            )

    def lookup_resources(self, resource_ids: Iterable[str]) -> dict[str, ResourceRead]:
        with self.lock:
            return {
                resource_id: ResourceRead.model_validate(self._resources[resource_id])
                for resource_id in resource_ids
                if resource_id in self._resources
            }

    def integrity_report(self) -> list[IntegrityWarning]:
        with self.lock:
            warnings: list[IntegrityWarning] = []
            for obj in self._callouts.values():
                for resource_id in obj.assigned_resources:
                    if resource_id in self._resources:
                        continue
                    reason = (
                        DELETED_RESOURCE_REASON
                        if resource_id in self._issued_ids
                        else UNKNOWN_RESOURCE_REASON
                    )
                    warnings.append(IntegrityWarning(obj.id, resource_id, reason))
            return warnings
