from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cachecrawler.sim.grid import Position
from cachecrawler.sim.registry import Token


@dataclass
class PlayerState:
    """Player position history and token inventory (a LIFO stack)."""

    current: Position
    previous: Position
    inventory: list[Token] = field(default_factory=list)
    trail: list[Position] = field(default_factory=list)

    @classmethod
    def at(cls, spawn: Position) -> "PlayerState":
        return cls(current=spawn, previous=spawn, trail=[spawn])

    @property
    def inventory_size(self) -> int:
        return len(self.inventory)

    def move_to(self, position: Position) -> None:
        self.previous = self.current
        self.current = position
        self.trail.append(position)

    def push_token(self, token: Token) -> None:
        self.inventory.append(token)

    def pop_token(self) -> Token | None:
        if not self.inventory:
            return None
        return self.inventory.pop()

    def reset(self, spawn: Position) -> None:
        self.inventory.clear()
        self.trail.clear()
        self.current = spawn
        self.previous = spawn
        self.trail.append(spawn)

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": {"current": self.current.to_dict(), "previous": self.previous.to_dict()},
            "inventory": [token.to_dict() for token in self.inventory],
            "trail": [position.to_dict() for position in self.trail],
        }
