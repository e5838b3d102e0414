from __future__ import annotations

import pytest
from fastapi import HTTPException

from callout_board.ws import CommandAckCache, apply_realtime_command, parse_command_message


@pytest.mark.asyncio
async def test_ack_cache_is_scoped_per_connection() -> None:
    cache = CommandAckCache()
    await cache.put("conn-a", "cmd-1", {"commandId": "cmd-1", "result": {"id": "c1"}})

    assert (await cache.get("conn-a", "cmd-1"))["result"] == {"id": "c1"}
    assert await cache.get("conn-b", "cmd-1") is None


@pytest.mark.asyncio
async def test_ack_cache_forget_drops_connection_entries() -> None:
    cache = CommandAckCache()
    await cache.put("conn-a", "cmd-1", {"commandId": "cmd-1"})
    await cache.put("conn-b", "cmd-1", {"commandId": "cmd-1"})

    await cache.forget("conn-a")

    assert await cache.get("conn-a", "cmd-1") is None
    assert await cache.get("conn-b", "cmd-1") is not None
    assert cache.connection_count() == 1


@pytest.mark.asyncio
async def test_ack_cache_keeps_newest_entries_per_connection() -> None:
    cache = CommandAckCache(max_entries=2)
    for index in range(3):
        await cache.put("conn-a", f"cmd-{index}", {"commandId": f"cmd-{index}"})

    assert await cache.get("conn-a", "cmd-0") is None
    assert await cache.get("conn-a", "cmd-2") is not None


@pytest.mark.asyncio
async def test_ack_cache_expires_old_entries() -> None:
    cache = CommandAckCache(ttl_seconds=-1)
    await cache.put("conn-a", "cmd-1", {"commandId": "cmd-1"})

    assert await cache.get("conn-a", "cmd-1") is None


@pytest.mark.asyncio
async def test_cached_ack_is_a_copy() -> None:
    cache = CommandAckCache()
    ack = {"commandId": "cmd-1"}
    await cache.put("conn-a", "cmd-1", ack)
    ack["status"] = "mutated"

    assert "status" not in await cache.get("conn-a", "cmd-1")


def test_parse_command_message_rejects_unknown_command() -> None:
    with pytest.raises(HTTPException) as exc_info:
        parse_command_message({"commandId": "c", "command": "launch_helicopter"})

    assert exc_info.value.status_code == 400


def test_create_resource_command_places_resource_on_board(hub) -> None:
    result = apply_realtime_command(hub, "create_resource", {"name": "Navigator", "category": "personnel"})

    assert hub.board.pools()["available"] == [result["id"]]

    apply_realtime_command(hub, "delete_resource", {"id": result["id"]})

    assert hub.board.pools()["available"] == []
