from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

CELL_HASH_SEPARATOR = ","


@dataclass(frozen=True, order=True)
class Cell:
    """Discrete grid cell (i along latitude, j along longitude)."""

    i: int
    j: int

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cell":
        if not isinstance(data, dict):
            raise ValueError("cell must be an object")
        return cls(i=_require_int(data.get("i"), field_name="cell.i"), j=_require_int(data.get("j"), field_name="cell.j"))


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        if not isinstance(data, dict):
            raise ValueError("position must be an object")
        lat = data.get("lat")
        lng = data.get("lng")
        if isinstance(lat, bool) or not isinstance(lat, (int, float)):
            raise ValueError("position.lat must be a number")
        if isinstance(lng, bool) or not isinstance(lng, (int, float)):
            raise ValueError("position.lng must be a number")
        return cls(lat=float(lat), lng=float(lng))


@dataclass(frozen=True)
class CellBounds:
    lat_min: float
    lng_min: float
    lat_max: float
    lng_max: float

    def contains(self, position: Position) -> bool:
        return self.lat_min <= position.lat < self.lat_max and self.lng_min <= position.lng < self.lng_max


def _require_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    return value


def _require_tile_degrees(tile_degrees: float) -> float:
    if not tile_degrees > 0:
        raise ValueError("tile_degrees must be > 0")
    return tile_degrees


def cell_of(lat: float, lng: float, tile_degrees: float) -> Cell:
    _require_tile_degrees(tile_degrees)
    return Cell(i=math.floor(lat / tile_degrees), j=math.floor(lng / tile_degrees))


def cell_of_position(position: Position, tile_degrees: float) -> Cell:
    return cell_of(position.lat, position.lng, tile_degrees)


def bounds_of(cell: Cell, tile_degrees: float) -> CellBounds:
    _require_tile_degrees(tile_degrees)
    return CellBounds(
        lat_min=cell.i * tile_degrees,
        lng_min=cell.j * tile_degrees,
        lat_max=(cell.i + 1) * tile_degrees,
        lng_max=(cell.j + 1) * tile_degrees,
    )


def cell_center(cell: Cell, tile_degrees: float) -> Position:
    _require_tile_degrees(tile_degrees)
    return Position(lat=(cell.i + 0.5) * tile_degrees, lng=(cell.j + 0.5) * tile_degrees)


def cell_hash(cell: Cell) -> str:
    return f"{cell.i}{CELL_HASH_SEPARATOR}{cell.j}"


def cell_from_hash(value: str) -> Cell:
    if not isinstance(value, str):
        raise ValueError("cell hash must be a string")
    parts = value.split(CELL_HASH_SEPARATOR)
    if len(parts) != 2:
        raise ValueError(f"malformed cell hash: {value!r}")
    try:
        cell = Cell(i=int(parts[0]), j=int(parts[1]))
    except ValueError as exc:
        raise ValueError(f"malformed cell hash: {value!r}") from exc
    if cell_hash(cell) != value:
        raise ValueError(f"non-canonical cell hash: {value!r}")
    return cell


def neighborhood(center: Cell, radius: int) -> Iterator[Cell]:
    """Cells at offsets [-radius, radius) x [-radius, radius) around ``center``."""
    if radius < 0:
        raise ValueError("radius must be >= 0")
    for di in range(-radius, radius):
        for dj in range(-radius, radius):
            yield Cell(i=center.i + di, j=center.j + dj)
