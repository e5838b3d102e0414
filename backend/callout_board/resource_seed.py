from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from .enums import ResourceCategory
from .store import EntityStore

logger = logging.getLogger(__name__)

# Default kit of a small mountain rescue team. Ids are stable so board layouts
# recorded by clients keep resolving across restarts.
RESOURCES_SEED: tuple[dict[str, Any], ...] = (
    {"id": "r1", "name": "Team Leader", "category": ResourceCategory.PERSONNEL},
    {"id": "r2", "name": "4x4 Vehicle", "category": ResourceCategory.VEHICLES},
    {"id": "r3", "name": "Medical Pack", "category": ResourceCategory.EQUIPMENT},
    {"id": "r4", "name": "Deputy Team Leader", "category": ResourceCategory.PERSONNEL},
    {"id": "r5", "name": "Casualty Carer", "category": ResourceCategory.PERSONNEL},
    {"id": "r6", "name": "Land Rover Ambulance", "category": ResourceCategory.VEHICLES},
    {"id": "r7", "name": "Bell Stretcher", "category": ResourceCategory.EQUIPMENT},
    {"id": "r8", "name": "Rope Rescue Kit", "category": ResourceCategory.EQUIPMENT},
)


def load_seed_file(path: str | Path) -> list[Mapping[str, Any]]:
    """Read seed records from a JSON file: a list, or ``{"resources": [...]}``."""
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)

    if isinstance(data, Mapping):
        data = data.get("resources")
    if not isinstance(data, list):
        raise ValueError("seed file must contain a list of resources")
    return [record for record in data if isinstance(record, Mapping)]


def resolve_seed_records(path: str | Path | None) -> Sequence[Mapping[str, Any]]:
    if path is None:
        return RESOURCES_SEED
    try:
        return load_seed_file(path)
    except (OSError, ValueError) as exc:
        # json.JSONDecodeError is a ValueError.
        logger.warning("Resource seed %s could not be loaded, starting empty: %s", path, exc)
        return ()


def seed_resources(store: EntityStore, path: str | Path | None = None) -> int:
    """Populate ``store`` once at startup. Never raises for a bad seed source."""
    records = resolve_seed_records(path)
    inserted = store.seed_resources(records)
    if inserted == 0:
        logger.warning("Resource store starts empty: no seed resources loaded")
    else:
        logger.info("Seeded %s resource(s)", inserted)
    return inserted
