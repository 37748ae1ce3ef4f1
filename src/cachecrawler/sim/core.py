from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from cachecrawler.content.config import GameConfig
from cachecrawler.content.io import KeyValueStore, MemoryStore, load_player, load_registry, save_player, save_registry
from cachecrawler.sim.economy import (
    DEPOSIT_COMMAND,
    MINT_COMMAND,
    WITHDRAW_COMMAND,
    EconomyCommand,
)
from cachecrawler.sim.grid import Cell, Position, bounds_of, cell_of_position, neighborhood
from cachecrawler.sim.movement import step_position
from cachecrawler.sim.player import PlayerState
from cachecrawler.sim.registry import CacheRegistry, TokenResult
from cachecrawler.sim.visibility import CacheRenderer, InMemoryRenderer, VisibilityWindow

MAX_ACTION_TRACE = 64
ACTION_VERBS = {
    DEPOSIT_COMMAND: "deposited",
    WITHDRAW_COMMAND: "withdrew",
    MINT_COMMAND: "generated",
}
OUTCOME_NOTICES = {
    "insufficient_budget": "No tokens available for mint",
    "empty_ledger": "No token in cache",
    "empty_inventory": "No token in inventory",
}


@dataclass(frozen=True)
class CachePanel:
    """Read-only view of one cache for its interaction surface."""

    cell_hash: str
    cell: Cell
    mint_budget: int
    ledger_size: int
    inventory_size: int


class GameSession:
    """One game: registry, player, visibility window and persistence, wired together.

    Every state-changing call persists to the store before returning.
    """

    def __init__(
        self,
        config: GameConfig,
        *,
        renderer: CacheRenderer | None = None,
        store: KeyValueStore | None = None,
    ) -> None:
        self.config = config
        self.renderer = renderer if renderer is not None else InMemoryRenderer()
        self.store = store if store is not None else MemoryStore()
        self.registry = CacheRegistry(
            config.spawn_probability,
            max_initial_budget=config.max_initial_budget,
            seed=config.oracle_seed,
        )
        self.player = PlayerState.at(config.spawn)
        self.window = VisibilityWindow(self.renderer, capacity=config.window_capacity)
        self.geolocation_enabled = False
        self.open_cache_hash: str | None = None
        self.action_trace: list[dict[str, Any]] = []

    @classmethod
    def restore(
        cls,
        config: GameConfig,
        store: KeyValueStore,
        *,
        renderer: CacheRenderer | None = None,
    ) -> "GameSession":
        session = cls(config, renderer=renderer, store=store)
        load_registry(store, session.registry)
        session.player = load_player(store, config.spawn)
        session.start()
        return session

    @property
    def player_cell(self) -> Cell:
        return cell_of_position(self.player.current, self.config.tile_degrees)

    @property
    def interaction_open(self) -> bool:
        return self.open_cache_hash is not None

    def start(self) -> list[str]:
        spawned = self.scan_neighborhood()
        self.persist()
        return spawned

    def scan_neighborhood(self) -> list[str]:
        batch = self.window.begin_batch()
        spawned: list[str] = []
        for cell in neighborhood(self.player_cell, self.config.neighborhood_size):
            decision = self.registry.consider_spawn(cell)
            if not decision.spawned:
                continue
            marker = self.renderer.create_marker(
                cell,
                bounds_of(cell, self.config.tile_degrees),
                self.registry.cache_color(cell),
            )
            self.window.record_in_batch(batch, marker)
            spawned.append(decision.cell_hash)
        self.window.commit_batch(batch)
        return spawned

    def move(self, direction: str) -> bool:
        if self.interaction_open or self.geolocation_enabled:
            return False
        self._relocate(step_position(self.player.current, direction, self.config.tile_degrees))
        return True

    def set_geolocation_enabled(self, enabled: bool) -> None:
        self.geolocation_enabled = bool(enabled)

    def poll_geolocation(self, position: Position) -> bool:
        """Apply one geolocation fix; ignored while disabled or while a cache panel is open."""
        if not self.geolocation_enabled or self.interaction_open:
            return False
        self._relocate(position)
        return True

    def _relocate(self, position: Position) -> None:
        self.player.move_to(position)
        self.scan_neighborhood()
        self.persist()

    def open_cache(self, hash_value: str) -> CachePanel:
        if self.open_cache_hash is not None:
            raise RuntimeError(f"cache {self.open_cache_hash} is already open")
        panel = self.cache_panel(hash_value)
        self.open_cache_hash = hash_value
        return panel

    def close_cache(self) -> None:
        self.open_cache_hash = None

    def cache_panel(self, hash_value: str) -> CachePanel:
        record = self.registry.get_cache(hash_value)
        if record is None:
            raise KeyError(f"unknown cache: {hash_value}")
        return CachePanel(
            cell_hash=hash_value,
            cell=record.cell,
            mint_budget=record.mint_budget,
            ledger_size=self.registry.ledger_size(hash_value),
            inventory_size=self.player.inventory_size,
        )

    def deposit(self, hash_value: str) -> TokenResult:
        return self.apply_command(EconomyCommand(command_type=DEPOSIT_COMMAND, cell_hash=hash_value))

    def withdraw(self, hash_value: str) -> TokenResult:
        return self.apply_command(EconomyCommand(command_type=WITHDRAW_COMMAND, cell_hash=hash_value))

    def mint(self, hash_value: str) -> TokenResult:
        return self.apply_command(EconomyCommand(command_type=MINT_COMMAND, cell_hash=hash_value))

    def apply_command(self, command: EconomyCommand) -> TokenResult:
        result = command.execute(self.registry, self.player)
        self._append_action_trace_entry(
            {
                "command_type": command.command_type,
                "cell_hash": command.cell_hash,
                "outcome": result.outcome,
                "token": result.token.to_dict() if result.token is not None else None,
            }
        )
        if result.applied:
            self.persist()
        return result

    def reset(self) -> list[str]:
        self.registry.reset()
        self.player.reset(self.config.spawn)
        self.window.reset_all()
        self.store.clear()
        self.action_trace.clear()
        self.open_cache_hash = None
        return self.start()

    def persist(self) -> None:
        save_registry(self.store, self.registry)
        save_player(self.store, self.player)

    def recent_message(self) -> str:
        if not self.action_trace:
            return ""
        entry = self.action_trace[-1]
        if entry["token"] is None:
            return OUTCOME_NOTICES.get(entry["outcome"], entry["outcome"])
        token = entry["token"]
        verb = ACTION_VERBS[entry["command_type"]]
        return f"Player {verb} token: {{{token['i']}:{token['j']}:{token['serial']}}}"

    def get_action_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.action_trace)

    def _append_action_trace_entry(self, entry: dict[str, Any]) -> None:
        self.action_trace.append(entry)
        if len(self.action_trace) > MAX_ACTION_TRACE:
            overflow = len(self.action_trace) - MAX_ACTION_TRACE
            del self.action_trace[:overflow]
