from __future__ import annotations

import logging

from .errors import UNKNOWN_RESOURCE_REASON
from .schemas import AssignedResourceRead, CallOutRead
from .store import EntityStore

logger = logging.getLogger(__name__)

UNKNOWN_RESOURCE_NAME = "Unknown resource"


class AssignmentManager:
    """Assign and unassign resources on call-outs.

    Both operations are idempotent. Resource ids are not checked against the
    resource collection: an unknown id is accepted and only logged, and
    display code resolves it to a placeholder via ``resolve``.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def assign(self, callout_id: str, resource_id: str) -> CallOutRead:
        def add(assigned: list[str]) -> bool:
            if resource_id in assigned:
                return False
            assigned.append(resource_id)
            return True

        with self._store.lock:
            known_resource = self._store.has_resource(resource_id)
            result = self._store.apply_assignment_change(callout_id, add)

        if not known_resource:
            logger.warning(
                "Call-out %s has %s assignment %s",
                callout_id,
                UNKNOWN_RESOURCE_REASON,
                resource_id,
            )
        return result

    def unassign(self, callout_id: str, resource_id: str) -> CallOutRead:
        def remove(assigned: list[str]) -> bool:
            if resource_id not in assigned:
                return False
            assigned.remove(resource_id)
            return True

        return self._store.apply_assignment_change(callout_id, remove)

    def resolve(self, callout_id: str) -> list[AssignedResourceRead]:
        with self._store.lock:
            callout = self._store.get_callout(callout_id)
            resources = self._store.lookup_resources(callout.assigned_resources)

        resolved: list[AssignedResourceRead] = []
        for resource_id in callout.assigned_resources:
            resource = resources.get(resource_id)
            if resource is None:
                resolved.append(
                    AssignedResourceRead(id=resource_id, name=UNKNOWN_RESOURCE_NAME, resolved=False)
                )
                continue
            resolved.append(
                AssignedResourceRead(
                    id=resource.id,
                    name=resource.name,
                    category=resource.category,
                    resolved=True,
                )
            )
        return resolved
