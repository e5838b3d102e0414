from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from callout_board.config import Settings
from callout_board.hub import StateHub, create_hub


class RecordingSubscriber:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def deliver(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    def names(self) -> list[str]:
        return [message["event"] for message in self.messages]

    def clear(self) -> None:
        self.messages.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    from callout_board.security.rate_limit import rate_limiter

    rate_limiter.clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        allowed_origins=["http://localhost:3000"],
        log_level="INFO",
        resource_seed_enabled=False,
        board_pools=("available", "teamA", "teamB"),
        ws_max_pending_events=1000,
        ws_max_commands_per_window=30,
        mutation_rate_limit=1000,
    )


@pytest.fixture
def hub(settings: Settings) -> StateHub:
    return create_hub(settings)


@pytest.fixture
def store(hub: StateHub):
    return hub.store


@pytest.fixture
def events(hub: StateHub) -> RecordingSubscriber:
    subscriber = RecordingSubscriber()
    hub.channel.subscribe(subscriber)
    return subscriber


@pytest.fixture
def make_client(hub: StateHub, settings: Settings) -> Callable[..., TestClient]:
    from callout_board.main import create_app

    def _make(**overrides: Any) -> TestClient:
        app_settings = replace(settings, **overrides)
        return TestClient(create_app(app_settings, hub=hub))

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    with make_client() as test_client:
        yield test_client


@pytest.fixture
def fell_rescue() -> dict[str, Any]:
    return {"name": "Fell rescue", "latitude": 54.5, "longitude": -3.1}
