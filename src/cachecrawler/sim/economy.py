from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cachecrawler.sim.player import PlayerState
from cachecrawler.sim.registry import (
    OUTCOME_APPLIED,
    OUTCOME_EMPTY_INVENTORY,
    CacheRegistry,
    TokenResult,
)

DEPOSIT_COMMAND = "deposit"
WITHDRAW_COMMAND = "withdraw"
MINT_COMMAND = "mint"
ECONOMY_COMMAND_TYPES = (DEPOSIT_COMMAND, WITHDRAW_COMMAND, MINT_COMMAND)


def deposit_from_inventory(registry: CacheRegistry, player: PlayerState, hash_value: str) -> TokenResult:
    # Unknown caches fail before the inventory is touched.
    if registry.get_cache(hash_value) is None:
        raise KeyError(f"unknown cache: {hash_value}")
    token = player.pop_token()
    if token is None:
        return TokenResult(outcome=OUTCOME_EMPTY_INVENTORY)
    registry.deposit(hash_value, token)
    return TokenResult(outcome=OUTCOME_APPLIED, token=token)


def withdraw_to_inventory(registry: CacheRegistry, player: PlayerState, hash_value: str) -> TokenResult:
    result = registry.withdraw(hash_value)
    if result.token is not None:
        player.push_token(result.token)
    return result


def mint_to_inventory(registry: CacheRegistry, player: PlayerState, hash_value: str) -> TokenResult:
    result = registry.mint(hash_value)
    if result.token is not None:
        player.push_token(result.token)
    return result


_OPERATIONS = {
    DEPOSIT_COMMAND: deposit_from_inventory,
    WITHDRAW_COMMAND: withdraw_to_inventory,
    MINT_COMMAND: mint_to_inventory,
}


@dataclass(frozen=True)
class EconomyCommand:
    """A button press on a cache panel, bound to the cache it targets."""

    command_type: str
    cell_hash: str

    def __post_init__(self) -> None:
        if self.command_type not in ECONOMY_COMMAND_TYPES:
            raise ValueError(f"unsupported economy command_type: {self.command_type!r}")
        if not isinstance(self.cell_hash, str) or not self.cell_hash:
            raise ValueError("cell_hash must be a non-empty string")

    def execute(self, registry: CacheRegistry, player: PlayerState) -> TokenResult:
        return _OPERATIONS[self.command_type](registry, player, self.cell_hash)

    def to_dict(self) -> dict[str, Any]:
        return {"command_type": self.command_type, "cell_hash": self.cell_hash}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EconomyCommand":
        return cls(command_type=str(data["command_type"]), cell_hash=str(data["cell_hash"]))
