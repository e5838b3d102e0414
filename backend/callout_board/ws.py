from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from .broadcast import QueueSubscriber
from .errors import NotFoundError, ValidationError
from .hub import StateHub
from .schemas import (
    AssignmentRef,
    BoardMove,
    EntityRef,
    dump_entity,
    parse_payload,
)
from .security.rate_limit import enforce_ws_rate_limit, rate_limiter

logger = logging.getLogger(__name__)

ws_router = APIRouter()

WS_COMMANDS = frozenset(
    {
        "create_callout",
        "update_callout",
        "delete_callout",
        "assign_resource",
        "unassign_resource",
        "create_resource",
        "update_resource",
        "delete_resource",
        "move_resource",
    }
)
WS_MAX_COMMAND_ID_LENGTH = 128
WS_MAX_COMMAND_NAME_LENGTH = 64
WS_MAX_PAYLOAD_JSON_BYTES = 64_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommandAckCache:
    """Acks of applied commands, per connection, for commandId de-duplication.

    Entries expire after ``ttl_seconds``; each connection keeps at most
    ``max_entries`` acks, oldest dropped first. ``forget`` drops a closed
    connection's acks since its command ids can never be replayed.
    """

    def __init__(self, ttl_seconds: int = 900, max_entries: int = 1000) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._acks: dict[str, OrderedDict[str, tuple[datetime, dict[str, Any]]]] = {}
        self._lock = asyncio.Lock()

    def _expire_locked(self, acks: OrderedDict[str, tuple[datetime, dict[str, Any]]]) -> None:
        expiration_border = utcnow() - timedelta(seconds=self._ttl_seconds)
        while acks:
            command_id, (created_at, _) = next(iter(acks.items()))
            if created_at >= expiration_border:
                break
            del acks[command_id]

    async def get(self, connection_id: str, command_id: str) -> dict[str, Any] | None:
        async with self._lock:
            acks = self._acks.get(connection_id)
            if acks is None:
                return None
            self._expire_locked(acks)
            entry = acks.get(command_id)
            if entry is None:
                return None
            return entry[1].copy()

    async def put(self, connection_id: str, command_id: str, ack: dict[str, Any]) -> None:
        async with self._lock:
            acks = self._acks.setdefault(connection_id, OrderedDict())
            self._expire_locked(acks)
            acks[command_id] = (utcnow(), ack.copy())
            while len(acks) > self._max_entries:
                acks.popitem(last=False)

    async def forget(self, connection_id: str) -> None:
        async with self._lock:
            self._acks.pop(connection_id, None)

    def connection_count(self) -> int:
        return len(self._acks)


def _split_entity_payload(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    changes = dict(payload)
    ref = parse_payload(EntityRef, {"id": changes.pop("id", None)})
    return ref.id, changes


def apply_realtime_command(hub: StateHub, command: str, payload: dict[str, Any]) -> Any:
    """Run one client command against the hub and return its JSON result."""
    if command == "create_callout":
        return dump_entity(hub.store.create_callout(payload))
    if command == "update_callout":
        callout_id, changes = _split_entity_payload(payload)
        return dump_entity(hub.store.update_callout(callout_id, changes))
    if command == "delete_callout":
        ref = parse_payload(EntityRef, payload)
        hub.store.delete_callout(ref.id)
        return {"id": ref.id}
    if command == "assign_resource":
        ref = parse_payload(AssignmentRef, payload)
        return dump_entity(hub.assignments.assign(ref.callout_id, ref.resource_id))
    if command == "unassign_resource":
        ref = parse_payload(AssignmentRef, payload)
        return dump_entity(hub.assignments.unassign(ref.callout_id, ref.resource_id))
    if command == "create_resource":
        return dump_entity(hub.store.create_resource(payload))
    if command == "update_resource":
        resource_id, changes = _split_entity_payload(payload)
        return dump_entity(hub.store.update_resource(resource_id, changes))
    if command == "delete_resource":
        ref = parse_payload(EntityRef, payload)
        hub.store.delete_resource(ref.id)
        return {"id": ref.id}
    if command == "move_resource":
        return {"pools": hub.board.move(parse_payload(BoardMove, payload))}
    raise HTTPException(status_code=400, detail="Unknown command")


def build_snapshot_message(hub: StateHub) -> dict[str, Any]:
    snapshot, pools = hub.snapshot()
    return {
        "type": "snapshot",
        "seq": snapshot.seq,
        "callouts": [dump_entity(callout) for callout in snapshot.callouts],
        "resources": [dump_entity(resource) for resource in snapshot.resources],
        "board": {"pools": pools},
        "serverTime": utcnow().isoformat(),
    }


def open_session(hub: StateHub, session: QueueSubscriber) -> None:
    """Subscribe and queue the snapshot under the store lock.

    The snapshot and the event stream then meet exactly at ``snapshot["seq"]``.
    """
    with hub.store.lock:
        hub.channel.subscribe(session)
        session.deliver(build_snapshot_message(hub))


def error_message(
    detail: str,
    code: str,
    status_code: int,
    command_id: str | None = None,
) -> dict[str, Any]:
    return {
        "type": "error",
        "detail": detail,
        "code": code,
        "status": status_code,
        **({"commandId": command_id} if command_id else {}),
    }


def parse_command_message(message: Any) -> tuple[str, str, dict[str, Any]]:
    if not isinstance(message, dict):
        raise HTTPException(status_code=422, detail="Message must be object")

    command_id = message.get("commandId")
    if not isinstance(command_id, str) or len(command_id.strip()) == 0:
        raise HTTPException(status_code=422, detail="commandId is required")
    if len(command_id) > WS_MAX_COMMAND_ID_LENGTH:
        raise HTTPException(status_code=422, detail="commandId is too long")

    command_name = message.get("command")
    if not isinstance(command_name, str) or len(command_name.strip()) == 0:
        raise HTTPException(status_code=422, detail="command is required")
    if len(command_name) > WS_MAX_COMMAND_NAME_LENGTH:
        raise HTTPException(status_code=422, detail="command is too long")
    if command_name not in WS_COMMANDS:
        raise HTTPException(status_code=400, detail="Unknown command")

    payload = message.get("payload", {})
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="payload must be object")
    payload_size = len(json.dumps(payload, ensure_ascii=False))
    if payload_size > WS_MAX_PAYLOAD_JSON_BYTES:
        raise HTTPException(status_code=413, detail="payload is too large")

    return command_id, command_name, payload


async def pump_outbound(websocket: WebSocket, session: QueueSubscriber) -> None:
    """Single writer for the socket: drain the session queue in FIFO order."""
    while True:
        message = await session.get()
        if message is None:
            break
        await websocket.send_json(message)

    if session.overflowed:
        logger.warning("Closing realtime session: event backlog overflow")
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)


ws_acks = CommandAckCache()


@ws_router.websocket("/api/ws")
async def realtime_ws_endpoint(websocket: WebSocket):
    hub: StateHub = websocket.app.state.hub
    settings = websocket.app.state.settings
    await websocket.accept()

    connection_id = str(uuid4())
    session = QueueSubscriber(
        asyncio.get_running_loop(),
        max_pending=settings.ws_max_pending_events,
    )
    # Store calls block on a threading lock, so they stay off the event loop.
    await run_in_threadpool(open_session, hub, session)
    logger.info("Realtime session %s connected", connection_id)

    pump_task = asyncio.create_task(pump_outbound(websocket, session))
    try:
        while not session.closed:
            command_id_for_error: str | None = None
            try:
                message = await websocket.receive_json()

                if isinstance(message, dict) and message.get("type") == "ping":
                    session.deliver({"type": "pong", "serverTime": utcnow().isoformat()})
                    continue

                if not isinstance(message, dict) or message.get("type") != "command":
                    raise HTTPException(status_code=400, detail="Unknown message type")

                raw_command_id = message.get("commandId")
                if isinstance(raw_command_id, str):
                    command_id_for_error = raw_command_id
                command_id, command_name, payload = parse_command_message(message)

                enforce_ws_rate_limit(connection_id, settings.ws_max_commands_per_window)
                cached_ack = await ws_acks.get(connection_id, command_id)
                if cached_ack is not None:
                    session.deliver({**cached_ack, "status": "duplicate"})
                    continue

                result = await run_in_threadpool(apply_realtime_command, hub, command_name, payload)
                ack_message = {
                    "type": "ack",
                    "commandId": command_id,
                    "status": "applied",
                    "command": command_name,
                    "result": result,
                    "serverTime": utcnow().isoformat(),
                }
                await ws_acks.put(connection_id, command_id, ack_message)
                session.deliver(ack_message)
            except ValidationError as exc:
                session.deliver(
                    error_message(exc.detail, "VALIDATION_ERROR", 422, command_id_for_error)
                )
            except NotFoundError as exc:
                session.deliver(
                    error_message(exc.detail, "NOT_FOUND", 404, command_id_for_error)
                )
            except HTTPException as exc:
                session.deliver(
                    error_message(str(exc.detail), "HTTP_ERROR", exc.status_code, command_id_for_error)
                )
            except (WebSocketDisconnect, json.JSONDecodeError):
                raise
            except Exception:
                logger.exception("Realtime command failed")
                session.deliver(
                    error_message(
                        "Internal realtime server error",
                        "INTERNAL_ERROR",
                        500,
                        command_id_for_error,
                    )
                )
    except WebSocketDisconnect:
        pass
    except json.JSONDecodeError:
        logger.info("Realtime session %s sent malformed JSON", connection_id)
        try:
            await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
        except RuntimeError:
            pass
    finally:
        hub.channel.unsubscribe(session)
        rate_limiter.forget(f"ws:{connection_id}")
        await ws_acks.forget(connection_id)
        session.close()
        pump_task.cancel()
        try:
            await pump_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("Outbound pump for %s ended with error", connection_id, exc_info=True)
        logger.info("Realtime session %s disconnected", connection_id)
