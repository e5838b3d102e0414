"""Resource board: ordered pools of resource ids moved by drag and drop.

``move`` is a pure reducer so a recorded sequence of drag events can be
replayed and tested without any UI or transport. ``ResourceBoard`` owns the
live partition and broadcasts it after every effective change.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .broadcast import BroadcastChannel
from .enums import BroadcastEvent
from .schemas import BoardMove, parse_payload

Pools = dict[str, list[str]]

DEFAULT_POOL_NAMES: tuple[str, ...] = ("available", "teamA", "teamB")


def copy_pools(pools: Mapping[str, Sequence[str]]) -> Pools:
    return {name: list(resource_ids) for name, resource_ids in pools.items()}


def build_pools(
    resource_ids: Iterable[str],
    pool_names: Sequence[str] = DEFAULT_POOL_NAMES,
    home_pool: str | None = None,
) -> Pools:
    if not pool_names:
        raise ValueError("at least one pool is required")
    if len(set(pool_names)) != len(pool_names):
        raise ValueError("pool names must be unique")
    home = home_pool if home_pool is not None else pool_names[0]
    if home not in pool_names:
        raise ValueError(f"home pool {home!r} is not one of the pools")

    pools: Pools = {name: [] for name in pool_names}
    for resource_id in dict.fromkeys(resource_ids):
        pools[home].append(resource_id)
    return pools


def locate(pools: Mapping[str, Sequence[str]], resource_id: str) -> str | None:
    for name, resource_ids in pools.items():
        if resource_id in resource_ids:
            return name
    return None


def move(
    pools: Mapping[str, Sequence[str]],
    resource_id: str,
    from_pool: str,
    to_pool: str,
    target_index: int,
) -> Mapping[str, Sequence[str]]:
    """Move ``resource_id`` from ``from_pool`` to ``to_pool`` at ``target_index``.

    A stale move (resource not in ``from_pool``, or an unknown pool) returns
    ``pools`` itself unchanged. Otherwise a new mapping is returned and the
    input is left untouched. The index is clamped to the destination bounds,
    so within one pool it lands in ``[0, len - 1]`` and across pools in
    ``[0, len(to_pool)]``.
    """
    source = pools.get(from_pool)
    destination = pools.get(to_pool)
    if source is None or destination is None or resource_id not in source:
        return pools

    result = copy_pools(pools)
    result[from_pool].remove(resource_id)
    target = result[to_pool]
    index = max(0, min(target_index, len(target)))
    target.insert(index, resource_id)
    return result


def replay(
    pools: Mapping[str, Sequence[str]],
    moves: Iterable[BoardMove | Mapping[str, Any]],
) -> Mapping[str, Sequence[str]]:
    state = pools
    for entry in moves:
        command = parse_payload(BoardMove, entry)
        state = move(
            state,
            command.resource_id,
            command.from_pool,
            command.to_pool,
            command.target_index,
        )
    return state


class ResourceBoard:
    def __init__(
        self,
        channel: BroadcastChannel,
        pool_names: Sequence[str] = DEFAULT_POOL_NAMES,
        resource_ids: Iterable[str] = (),
        lock: threading.RLock | None = None,
    ) -> None:
        self._channel = channel
        self.lock = lock if lock is not None else threading.RLock()
        self.home_pool = pool_names[0] if pool_names else ""
        self._pools: Pools = build_pools(resource_ids, pool_names)

    def pools(self) -> Pools:
        with self.lock:
            return copy_pools(self._pools)

    def _replace(self, pools: Mapping[str, Sequence[str]]) -> None:
        self._pools = copy_pools(pools)
        self._channel.publish(BroadcastEvent.BOARD_UPDATE, {"pools": copy_pools(self._pools)})

    def move(self, command: BoardMove | Mapping[str, Any]) -> Pools:
        payload = parse_payload(BoardMove, command)
        with self.lock:
            next_pools = move(
                self._pools,
                payload.resource_id,
                payload.from_pool,
                payload.to_pool,
                payload.target_index,
            )
            if next_pools != self._pools:
                self._replace(next_pools)
            return copy_pools(self._pools)

    def add_resource(self, resource_id: str) -> None:
        with self.lock:
            if locate(self._pools, resource_id) is not None:
                return
            next_pools = copy_pools(self._pools)
            next_pools[self.home_pool].append(resource_id)
            self._replace(next_pools)

    def remove_resource(self, resource_id: str) -> None:
        with self.lock:
            pool_name = locate(self._pools, resource_id)
            if pool_name is None:
                return
            next_pools = copy_pools(self._pools)
            next_pools[pool_name].remove(resource_id)
            self._replace(next_pools)
