from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from cachecrawler.sim.grid import Cell, cell_hash
from cachecrawler.sim.rng import luck, oracle_key

DEFAULT_MAX_INITIAL_BUDGET = 25
INITIAL_VALUE_DISCRIMINATOR = "initialValue"
COLOR_DISCRIMINATOR = "color"

OUTCOME_APPLIED = "applied"
OUTCOME_INSUFFICIENT_BUDGET = "insufficient_budget"
OUTCOME_EMPTY_LEDGER = "empty_ledger"
OUTCOME_EMPTY_INVENTORY = "empty_inventory"


@dataclass(frozen=True)
class Token:
    """Collectible minted by a cache; identity is (origin, serial)."""

    origin: Cell
    serial: int

    @property
    def label(self) -> str:
        return f"{self.origin.i}:{self.origin.j}#{self.serial}"

    def to_dict(self) -> dict[str, int]:
        return {"i": self.origin.i, "j": self.origin.j, "serial": self.serial}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Token":
        if not isinstance(data, dict):
            raise ValueError("token must be an object")
        serial = data.get("serial")
        if isinstance(serial, bool) or not isinstance(serial, int) or serial < 0:
            raise ValueError("token.serial must be a non-negative integer")
        return cls(origin=Cell.from_dict(data), serial=serial)


@dataclass
class CacheRecord:
    cell: Cell
    mint_budget: int
    next_serial: int = 0


@dataclass(frozen=True)
class SpawnDecision:
    spawned: bool
    cell_hash: str


@dataclass(frozen=True)
class TokenResult:
    """Outcome of a token operation; ``token`` is set only when applied."""

    outcome: str
    token: Token | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == OUTCOME_APPLIED


class CacheRegistry:
    """Owns cache existence, mint budgets and deposit ledgers, keyed by cell hash."""

    def __init__(
        self,
        spawn_probability: float,
        *,
        max_initial_budget: int = DEFAULT_MAX_INITIAL_BUDGET,
        seed: int = 0,
    ) -> None:
        if not 0.0 <= spawn_probability <= 1.0:
            raise ValueError("spawn_probability must be within [0, 1]")
        if isinstance(max_initial_budget, bool) or not isinstance(max_initial_budget, int) or max_initial_budget < 1:
            raise ValueError("max_initial_budget must be an integer >= 1")
        self.spawn_probability = spawn_probability
        self.max_initial_budget = max_initial_budget
        self.seed = seed
        self._caches: dict[str, CacheRecord] = {}
        self._ledgers: dict[str, list[Token]] = {}

    def __contains__(self, hash_value: object) -> bool:
        return hash_value in self._caches

    def __len__(self) -> int:
        return len(self._caches)

    def spawn_roll(self, cell: Cell) -> float:
        return luck(oracle_key(cell.i, cell.j), seed=self.seed)

    def initial_budget(self, cell: Cell) -> int:
        roll = luck(oracle_key(cell.i, cell.j, INITIAL_VALUE_DISCRIMINATOR), seed=self.seed)
        return math.floor(roll * self.max_initial_budget) + 1

    def cache_color(self, cell: Cell) -> tuple[int, int, int]:
        red, green, blue = (
            int(luck(oracle_key(cell.i, cell.j, COLOR_DISCRIMINATOR, channel), seed=self.seed) * 256)
            for channel in ("r", "g", "b")
        )
        return (red, green, blue)

    def consider_spawn(self, cell: Cell) -> SpawnDecision:
        if self.spawn_roll(cell) < self.spawn_probability:
            return SpawnDecision(spawned=True, cell_hash=self.ensure_exists(cell))
        return SpawnDecision(spawned=False, cell_hash=cell_hash(cell))

    def ensure_exists(self, cell: Cell) -> str:
        hash_value = cell_hash(cell)
        if hash_value not in self._caches:
            self._caches[hash_value] = CacheRecord(cell=cell, mint_budget=self.initial_budget(cell))
        return hash_value

    def get_cache(self, hash_value: str) -> CacheRecord | None:
        return self._caches.get(hash_value)

    def get_mint_budget(self, hash_value: str) -> int | None:
        record = self._caches.get(hash_value)
        return None if record is None else record.mint_budget

    def mint(self, hash_value: str) -> TokenResult:
        record = self._require_cache(hash_value)
        if record.mint_budget <= 0:
            return TokenResult(outcome=OUTCOME_INSUFFICIENT_BUDGET)
        record.mint_budget -= 1
        token = Token(origin=record.cell, serial=record.next_serial)
        record.next_serial += 1
        return TokenResult(outcome=OUTCOME_APPLIED, token=token)

    def deposit_ledger_of(self, hash_value: str) -> tuple[Token, ...]:
        return tuple(self._ledgers.get(hash_value, ()))

    def ledger_size(self, hash_value: str) -> int:
        return len(self._ledgers.get(hash_value, ()))

    def deposit(self, hash_value: str, token: Token) -> None:
        self._require_cache(hash_value)
        self._ledgers.setdefault(hash_value, []).append(token)

    def withdraw(self, hash_value: str) -> TokenResult:
        ledger = self._ledgers.get(hash_value)
        if not ledger:
            return TokenResult(outcome=OUTCOME_EMPTY_LEDGER)
        return TokenResult(outcome=OUTCOME_APPLIED, token=ledger.pop())

    def reset(self) -> None:
        self._caches.clear()
        self._ledgers.clear()

    def records(self) -> list[tuple[str, CacheRecord]]:
        return sorted(self._caches.items(), key=lambda item: item[1].cell)

    def ledgers(self) -> dict[str, tuple[Token, ...]]:
        return {hash_value: tuple(tokens) for hash_value, tokens in sorted(self._ledgers.items()) if tokens}

    def restore_cache(self, hash_value: str, cell: Cell, *, mint_budget: int, next_serial: int) -> None:
        if cell_hash(cell) != hash_value:
            raise ValueError(f"cache hash {hash_value!r} does not match cell {cell}")
        if mint_budget < 0:
            raise ValueError("mint_budget must be >= 0")
        if next_serial < 0:
            raise ValueError("next_serial must be >= 0")
        self._caches[hash_value] = CacheRecord(cell=cell, mint_budget=mint_budget, next_serial=next_serial)

    def restore_ledger(self, hash_value: str, tokens: list[Token]) -> None:
        self._require_cache(hash_value)
        self._ledgers[hash_value] = list(tokens)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spawn_probability": self.spawn_probability,
            "max_initial_budget": self.max_initial_budget,
            "seed": self.seed,
            "caches": [
                {
                    "cell_hash": hash_value,
                    "cell": record.cell.to_dict(),
                    "mint_budget": record.mint_budget,
                    "next_serial": record.next_serial,
                }
                for hash_value, record in self.records()
            ],
            "ledgers": [
                {"cell_hash": hash_value, "tokens": [token.to_dict() for token in tokens]}
                for hash_value, tokens in self.ledgers().items()
            ],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CacheRegistry":
        registry = cls(
            float(payload["spawn_probability"]),
            max_initial_budget=int(payload.get("max_initial_budget", DEFAULT_MAX_INITIAL_BUDGET)),
            seed=int(payload.get("seed", 0)),
        )
        for row in payload.get("caches", []):
            registry.restore_cache(
                str(row["cell_hash"]),
                Cell.from_dict(row["cell"]),
                mint_budget=int(row["mint_budget"]),
                next_serial=int(row.get("next_serial", 0)),
            )
        for row in payload.get("ledgers", []):
            registry.restore_ledger(str(row["cell_hash"]), [Token.from_dict(token) for token in row["tokens"]])
        return registry

    def _require_cache(self, hash_value: str) -> CacheRecord:
        record = self._caches.get(hash_value)
        if record is None:
            raise KeyError(f"unknown cache: {hash_value}")
        return record
