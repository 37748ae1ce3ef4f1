from __future__ import annotations

from cachecrawler.sim.grid import Cell, Position, cell_center, cell_of_position

DIRECTION_STEPS: dict[str, tuple[int, int]] = {
    "north": (1, 0),
    "south": (-1, 0),
    "east": (0, 1),
    "west": (0, -1),
}
DIRECTION_ALIASES = {
    "up": "north",
    "down": "south",
    "right": "east",
    "left": "west",
    "n": "north",
    "s": "south",
    "e": "east",
    "w": "west",
}


def normalize_direction(direction: str) -> str:
    normalized = DIRECTION_ALIASES.get(direction, direction)
    if normalized not in DIRECTION_STEPS:
        raise ValueError(f"unknown direction: {direction!r}")
    return normalized


def step_position(position: Position, direction: str, tile_degrees: float) -> Position:
    """Move one tile in ``direction``, landing on the center of the neighboring cell.

    Stepping from cell indices keeps repeated moves from drifting across tile edges.
    """
    d_i, d_j = DIRECTION_STEPS[normalize_direction(direction)]
    cell = cell_of_position(position, tile_degrees)
    return cell_center(Cell(i=cell.i + d_i, j=cell.j + d_j), tile_degrees)
