from __future__ import annotations

import logging
import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from callout_board.assignments import UNKNOWN_RESOURCE_NAME
from callout_board.errors import UNKNOWN_RESOURCE_REASON, IntegrityWarning, NotFoundError


@pytest.fixture
def callout(store, fell_rescue):
    return store.create_callout(fell_rescue)


@pytest.fixture
def land_rover(store):
    return store.create_resource({"name": "Land Rover", "category": "vehicles"})


def test_assign_adds_resource_and_publishes_once(hub, store, events, callout, land_rover) -> None:
    events.clear()

    result = hub.assignments.assign(callout.id, land_rover.id)

    assert result.assigned_resources == [land_rover.id]
    assert store.list_callouts()[0].assigned_resources == [land_rover.id]
    assert events.names() == ["callout:update"]
    assert events.messages[0]["payload"]["id"] == callout.id
    assert events.messages[0]["payload"]["assignedResources"] == [land_rover.id]


def test_repeat_assign_is_idempotent_and_silent(hub, events, callout, land_rover) -> None:
    hub.assignments.assign(callout.id, land_rover.id)
    events.clear()

    result = hub.assignments.assign(callout.id, land_rover.id)

    assert result.assigned_resources == [land_rover.id]
    assert events.messages == []


def test_assignment_order_follows_insertion(hub, store, callout) -> None:
    ids = [
        store.create_resource({"name": name, "category": "personnel"}).id
        for name in ("Team Leader", "Casualty Carer", "Navigator")
    ]
    for resource_id in reversed(ids):
        hub.assignments.assign(callout.id, resource_id)

    assert store.get_callout(callout.id).assigned_resources == list(reversed(ids))


def test_unassign_removes_resource(hub, events, callout, land_rover) -> None:
    hub.assignments.assign(callout.id, land_rover.id)
    events.clear()

    result = hub.assignments.unassign(callout.id, land_rover.id)

    assert result.assigned_resources == []
    assert events.names() == ["callout:update"]


def test_unassign_absent_resource_is_a_no_op(hub, events, callout, land_rover) -> None:
    events.clear()

    result = hub.assignments.unassign(callout.id, land_rover.id)

    assert result.assigned_resources == []
    assert events.messages == []


@pytest.mark.parametrize("operation", ["assign", "unassign"])
def test_assignment_on_missing_callout_raises_not_found(hub, events, land_rover, operation) -> None:
    events.clear()

    with pytest.raises(NotFoundError):
        getattr(hub.assignments, operation)("missing-callout", land_rover.id)

    assert events.messages == []


def test_assign_unknown_resource_is_accepted_and_logged(hub, store, callout, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="callout_board.assignments"):
        result = hub.assignments.assign(callout.id, "no-such-resource")

    assert result.assigned_resources == ["no-such-resource"]
    assert "no-such-resource" in caplog.text
    assert store.integrity_report() == [
        IntegrityWarning(callout.id, "no-such-resource", UNKNOWN_RESOURCE_REASON)
    ]


def test_resolve_marks_dangling_ids_as_unknown(hub, store, callout, land_rover) -> None:
    hub.assignments.assign(callout.id, land_rover.id)
    hub.assignments.assign(callout.id, "ghost")

    resolved = hub.assignments.resolve(callout.id)

    assert [(item.id, item.name, item.resolved) for item in resolved] == [
        (land_rover.id, "Land Rover", True),
        ("ghost", UNKNOWN_RESOURCE_NAME, False),
    ]
    assert resolved[1].category is None


def test_concurrent_assignments_lose_no_update(hub, store, events, callout) -> None:
    resource_ids = [
        store.create_resource({"name": f"Kit {index}", "category": "equipment"}).id
        for index in range(400)
    ]
    work = resource_ids * 2
    random.Random(7).shuffle(work)
    events.clear()

    with ThreadPoolExecutor(max_workers=16) as executor:
        list(executor.map(lambda resource_id: hub.assignments.assign(callout.id, resource_id), work))

    assigned = store.get_callout(callout.id).assigned_resources
    assert len(assigned) == 400
    assert set(assigned) == set(resource_ids)
    assert events.names() == ["callout:update"] * 400
    # Each broadcast reflects exactly one more id than the one before it.
    assert [len(message["payload"]["assignedResources"]) for message in events.messages] == list(
        range(1, 401)
    )
