from __future__ import annotations

from dataclasses import dataclass

from .assignments import AssignmentManager
from .board import DEFAULT_POOL_NAMES, Pools, ResourceBoard
from .broadcast import BroadcastChannel
from .config import Settings
from .resource_seed import seed_resources
from .store import EntityStore, StoreSnapshot


@dataclass
class StateHub:
    """Explicit handle on one independent set of live state.

    Store, assignment manager and board share the store's lock. The board is
    a resource listener of the store, so creating or deleting a resource
    through any entry point publishes two events back to back: the resource
    event first, then ``board:update`` with the new pools. No other event can
    be published between them.
    """

    channel: BroadcastChannel
    store: EntityStore
    assignments: AssignmentManager
    board: ResourceBoard

    def snapshot(self) -> tuple[StoreSnapshot, Pools]:
        with self.store.lock:
            return self.store.snapshot(), self.board.pools()


def create_hub(settings: Settings | None = None, *, seed: bool = False) -> StateHub:
    channel = BroadcastChannel()
    store = EntityStore(channel)
    if seed and settings is not None and settings.resource_seed_enabled:
        seed_resources(store, settings.resource_seed_path)

    pool_names = settings.board_pools if settings is not None else DEFAULT_POOL_NAMES
    board = ResourceBoard(
        channel,
        pool_names=pool_names,
        resource_ids=[resource.id for resource in store.list_resources()],
        lock=store.lock,
    )
    store.add_resource_listener(board)
    return StateHub(
        channel=channel,
        store=store,
        assignments=AssignmentManager(store),
        board=board,
    )
