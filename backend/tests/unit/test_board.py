from __future__ import annotations

import random
from collections import Counter

import pytest

from callout_board.board import ResourceBoard, build_pools, locate, move, replay
from callout_board.broadcast import BroadcastChannel


def test_move_between_pools() -> None:
    pools = {"available": ["r1", "r2"], "teamA": []}

    result = move(pools, "r1", "available", "teamA", 0)

    assert result == {"available": ["r2"], "teamA": ["r1"]}
    assert pools == {"available": ["r1", "r2"], "teamA": []}


def test_move_within_pool_reorders() -> None:
    pools = {"available": ["r1", "r2", "r3"], "teamA": ["r4"]}

    result = move(pools, "r1", "available", "available", 2)

    assert result == {"available": ["r2", "r3", "r1"], "teamA": ["r4"]}


def test_move_within_pool_clamps_index() -> None:
    pools = {"available": ["r1", "r2", "r3"]}

    assert move(pools, "r3", "available", "available", -5) == {"available": ["r3", "r1", "r2"]}
    assert move(pools, "r1", "available", "available", 99) == {"available": ["r2", "r3", "r1"]}


def test_move_across_pools_clamps_index() -> None:
    pools = {"available": ["r1"], "teamA": ["r2", "r3"]}

    assert move(pools, "r1", "available", "teamA", 42)["teamA"] == ["r2", "r3", "r1"]
    assert move(pools, "r1", "available", "teamA", -1)["teamA"] == ["r1", "r2", "r3"]


def test_stale_move_returns_state_unchanged() -> None:
    pools = {"available": ["r2"], "teamA": ["r1"]}

    assert move(pools, "r1", "available", "teamA", 0) is pools
    assert move(pools, "r9", "available", "teamA", 0) is pools
    assert move(pools, "r2", "available", "teamZ", 0) is pools
    assert move(pools, "r2", "missing", "teamA", 0) is pools


def test_cross_pool_move_leaves_other_pools_alone() -> None:
    pools = {"available": ["r1"], "teamA": [], "teamB": ["r2", "r3"]}

    result = move(pools, "r1", "available", "teamA", 0)

    assert result["teamB"] == ["r2", "r3"]


def test_random_move_sequences_conserve_membership() -> None:
    rng = random.Random(20240618)
    pool_names = ["available", "teamA", "teamB"]
    resource_ids = [f"r{index}" for index in range(12)]
    pools = build_pools(resource_ids, pool_names)

    for _ in range(500):
        resource_id = rng.choice(resource_ids + ["stale"])
        from_pool = locate(pools, resource_id) if rng.random() > 0.1 else rng.choice(pool_names)
        pools = move(
            pools,
            resource_id,
            from_pool or "available",
            rng.choice(pool_names),
            rng.randint(-3, 15),
        )

        counts = Counter(item for members in pools.values() for item in members)
        assert sum(len(members) for members in pools.values()) == len(resource_ids)
        assert set(counts) == set(resource_ids)
        assert all(count == 1 for count in counts.values())


def test_replay_applies_recorded_moves_in_order() -> None:
    pools = build_pools(["r1", "r2", "r3"])

    result = replay(
        pools,
        [
            {"resourceId": "r1", "fromPool": "available", "toPool": "teamA", "targetIndex": 0},
            {"resourceId": "r3", "fromPool": "available", "toPool": "teamA", "targetIndex": 0},
            {"resourceId": "r1", "fromPool": "available", "toPool": "teamB", "targetIndex": 0},
        ],
    )

    assert result == {"available": ["r2"], "teamA": ["r3", "r1"], "teamB": []}


def test_build_pools_puts_everything_in_home_pool() -> None:
    pools = build_pools(["r1", "r2", "r1"], ("available", "teamA"))

    assert pools == {"available": ["r1", "r2"], "teamA": []}


@pytest.mark.parametrize(
    ("pool_names", "home_pool"),
    [((), None), (("a", "a"), None), (("a", "b"), "c")],
)
def test_build_pools_rejects_bad_layouts(pool_names, home_pool) -> None:
    with pytest.raises(ValueError):
        build_pools([], pool_names, home_pool)


def test_resource_board_publishes_only_effective_moves() -> None:
    channel = BroadcastChannel()
    received: list[dict] = []

    class Sink:
        def deliver(self, message: dict) -> None:
            received.append(message)

    channel.subscribe(Sink())
    board = ResourceBoard(channel, resource_ids=["r1", "r2"])

    board.move({"resourceId": "r1", "fromPool": "available", "toPool": "teamA", "targetIndex": 0})
    board.move({"resourceId": "r1", "fromPool": "available", "toPool": "teamA", "targetIndex": 0})
    board.move({"resourceId": "r2", "fromPool": "available", "toPool": "available", "targetIndex": 0})

    assert [message["event"] for message in received] == ["board:update"]
    assert received[0]["payload"] == {
        "pools": {"available": ["r2"], "teamA": ["r1"], "teamB": []}
    }


def test_resource_board_tracks_resource_universe() -> None:
    board = ResourceBoard(BroadcastChannel(), resource_ids=["r1"])

    board.add_resource("r2")
    board.add_resource("r2")
    board.move({"resourceId": "r1", "fromPool": "available", "toPool": "teamB", "targetIndex": 0})
    board.remove_resource("r1")
    board.remove_resource("r1")

    assert board.pools() == {"available": ["r2"], "teamA": [], "teamB": []}
