from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"
)
DEFAULT_BOARD_POOLS = "available,teamA,teamB"


def parse_env_flag(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    normalized = raw_value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def parse_env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def parse_csv(raw_value: str) -> list[str]:
    return [item.strip() for item in raw_value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    allowed_origins: list[str] = field(default_factory=lambda: parse_csv(DEFAULT_ALLOWED_ORIGINS))
    log_level: str = "INFO"
    resource_seed_enabled: bool = True
    resource_seed_path: str | None = None
    board_pools: tuple[str, ...] = ("available", "teamA", "teamB")
    ws_max_pending_events: int = 1000
    ws_max_commands_per_window: int = 30
    mutation_rate_limit: int = 120


def load_settings() -> Settings:
    # Duplicate pool names would break the board partition; keep first occurrence.
    board_pools = tuple(dict.fromkeys(parse_csv(os.getenv("BOARD_POOLS", DEFAULT_BOARD_POOLS))))
    return Settings(
        allowed_origins=parse_csv(os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        resource_seed_enabled=parse_env_flag("RESOURCE_SEED_ENABLED", True),
        resource_seed_path=os.getenv("RESOURCE_SEED_PATH", "").strip() or None,
        board_pools=board_pools or tuple(parse_csv(DEFAULT_BOARD_POOLS)),
        ws_max_pending_events=parse_env_int("WS_MAX_PENDING_EVENTS", 1000, 10, 100_000),
        ws_max_commands_per_window=parse_env_int("WS_MAX_COMMANDS_PER_WINDOW", 30, 1, 1000),
        mutation_rate_limit=parse_env_int("MUTATION_RATE_LIMIT", 120, 1, 100_000),
    )
