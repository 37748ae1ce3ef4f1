from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cachecrawler.sim.grid import Position

CONFIG_SCHEMA_VERSION = 1
DEFAULT_CONFIG_PATH = "content/config/game_config.json"

NULL_ISLAND = Position(lat=0.0, lng=0.0)
OAKES_CLASSROOM = Position(lat=36.98949379578401, lng=-122.06277128548504)
SPAWN_LOCATIONS: dict[str, Position] = {
    "null_island": NULL_ISLAND,
    "oakes_classroom": OAKES_CLASSROOM,
}


@dataclass(frozen=True)
class GameConfig:
    tile_degrees: float = 1e-4
    neighborhood_size: int = 8
    spawn_probability: float = 0.05
    max_initial_budget: int = 25
    window_capacity: int = 2
    oracle_seed: int = 0
    spawn: Position = field(default_factory=lambda: OAKES_CLASSROOM)
    geolocation_interval_seconds: float = 1.0

    def __post_init__(self) -> None:
        if isinstance(self.tile_degrees, bool) or not isinstance(self.tile_degrees, (int, float)) or self.tile_degrees <= 0:
            raise ValueError("tile_degrees must be a number > 0")
        if isinstance(self.neighborhood_size, bool) or not isinstance(self.neighborhood_size, int) or self.neighborhood_size < 0:
            raise ValueError("neighborhood_size must be an integer >= 0")
        if (
            isinstance(self.spawn_probability, bool)
            or not isinstance(self.spawn_probability, (int, float))
            or not 0.0 <= self.spawn_probability <= 1.0
        ):
            raise ValueError("spawn_probability must be within [0, 1]")
        if isinstance(self.max_initial_budget, bool) or not isinstance(self.max_initial_budget, int) or self.max_initial_budget < 1:
            raise ValueError("max_initial_budget must be an integer >= 1")
        if isinstance(self.window_capacity, bool) or not isinstance(self.window_capacity, int) or self.window_capacity < 1:
            raise ValueError("window_capacity must be an integer >= 1")
        if isinstance(self.oracle_seed, bool) or not isinstance(self.oracle_seed, int):
            raise ValueError("oracle_seed must be an integer")
        if not isinstance(self.spawn, Position):
            raise ValueError("spawn must be a Position")
        if (
            isinstance(self.geolocation_interval_seconds, bool)
            or not isinstance(self.geolocation_interval_seconds, (int, float))
            or self.geolocation_interval_seconds <= 0
        ):
            raise ValueError("geolocation_interval_seconds must be a number > 0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": CONFIG_SCHEMA_VERSION,
            "tile_degrees": self.tile_degrees,
            "neighborhood_size": self.neighborhood_size,
            "spawn_probability": self.spawn_probability,
            "max_initial_budget": self.max_initial_budget,
            "window_capacity": self.window_capacity,
            "oracle_seed": self.oracle_seed,
            "spawn": self.spawn.to_dict(),
            "geolocation_interval_seconds": self.geolocation_interval_seconds,
        }


def load_game_config_json(path: str | Path) -> GameConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return game_config_from_payload(payload)


def game_config_from_payload(payload: Any) -> GameConfig:
    if not isinstance(payload, dict):
        raise ValueError("game config payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("game config must contain integer field: schema_version")
    if schema_version != CONFIG_SCHEMA_VERSION:
        raise ValueError(f"unsupported game config schema_version: {schema_version}")

    defaults = GameConfig()
    spawn_raw = payload.get("spawn", defaults.spawn.to_dict())
    if isinstance(spawn_raw, str):
        if spawn_raw not in SPAWN_LOCATIONS:
            raise ValueError(f"unknown spawn location: {spawn_raw}")
        spawn = SPAWN_LOCATIONS[spawn_raw]
    else:
        spawn = Position.from_dict(spawn_raw)

    return GameConfig(
        tile_degrees=payload.get("tile_degrees", defaults.tile_degrees),
        neighborhood_size=payload.get("neighborhood_size", defaults.neighborhood_size),
        spawn_probability=payload.get("spawn_probability", defaults.spawn_probability),
        max_initial_budget=payload.get("max_initial_budget", defaults.max_initial_budget),
        window_capacity=payload.get("window_capacity", defaults.window_capacity),
        oracle_seed=payload.get("oracle_seed", defaults.oracle_seed),
        spawn=spawn,
        geolocation_interval_seconds=payload.get(
            "geolocation_interval_seconds", defaults.geolocation_interval_seconds
        ),
    )
