from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Protocol, TypeVar

from cachecrawler.sim.grid import Cell, Position, cell_from_hash, cell_hash
from cachecrawler.sim.player import PlayerState
from cachecrawler.sim.registry import CacheRegistry, Token

CACHE_KEY = "cache"
TOKEN_COUNT_KEY = "tokenCount"
TOKEN_SERIAL_KEY = "tokenSerial"
DEPOSIT_BOX_KEY = "depositBox"
INVENTORY_KEY = "inventory"
LOCATION_KEY = "location"
POLY_KEY = "poly"
STORE_KEYS = (CACHE_KEY, TOKEN_COUNT_KEY, TOKEN_SERIAL_KEY, DEPOSIT_BOX_KEY, INVENTORY_KEY, LOCATION_KEY, POLY_KEY)

STORE_SCHEMA_VERSION = 1
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")
COMPACT_JSON_SEPARATORS = (",", ":")

T = TypeVar("T")


class KeyValueStore(Protocol):
    """String-keyed, string-valued store with the browser localStorage contract."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStore:
    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def clear(self) -> None:
        self.items.clear()


class JsonFileStore:
    """Store persisted as one canonical JSON file, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._items = _read_store_file(self.path)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def clear(self) -> None:
        self._items.clear()
        self._flush()

    def _flush(self) -> None:
        _write_atomic_json(self.path, {"schema_version": STORE_SCHEMA_VERSION, "items": dict(sorted(self._items.items()))})


def _warn(message: str) -> None:
    print(f"[cachecrawler.store] warning: {message}", file=sys.stderr)


def _read_store_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        _warn(f"unreadable store file {path}: {exc}; starting empty")
        return {}
    if not isinstance(payload, dict) or payload.get("schema_version") != STORE_SCHEMA_VERSION:
        _warn(f"unsupported store file {path}; starting empty")
        return {}
    items = payload.get("items")
    if not isinstance(items, dict) or not all(isinstance(key, str) and isinstance(value, str) for key, value in items.items()):
        _warn(f"store file {path} has malformed items; starting empty")
        return {}
    return dict(items)


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def _dump(value: Any) -> str:
    return json.dumps(value, separators=COMPACT_JSON_SEPARATORS)


def _load_key(store: KeyValueStore, key: str, parse: Callable[[Any], T], default: T) -> T:
    raw = store.get_item(key)
    if raw is None:
        return default
    try:
        return parse(json.loads(raw))
    except (ValueError, KeyError, TypeError) as exc:
        _warn(f"corrupt value for key {key!r} ({exc}); using empty state")
        return default


def _parse_pairs(payload: Any, parse_value: Callable[[Any], T], *, field_name: str) -> dict[str, T]:
    if not isinstance(payload, list):
        raise ValueError(f"{field_name} must be a list of [hash, value] pairs")
    pairs: dict[str, T] = {}
    for index, row in enumerate(payload):
        if not isinstance(row, list) or len(row) != 2 or not isinstance(row[0], str):
            raise ValueError(f"{field_name}[{index}] must be a [hash, value] pair")
        cell_from_hash(row[0])
        pairs[row[0]] = parse_value(row[1])
    return pairs


def _parse_non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("expected a non-negative integer")
    return value


def _parse_tokens(value: Any) -> list[Token]:
    if not isinstance(value, list):
        raise ValueError("tokens must be a list")
    return [Token.from_dict(row) for row in value]


def _parse_caches(payload: Any) -> dict[str, Cell]:
    caches = _parse_pairs(payload, Cell.from_dict, field_name=CACHE_KEY)
    for hash_value, cell in caches.items():
        if cell_hash(cell) != hash_value:
            raise ValueError(f"cache hash {hash_value!r} does not match its cell")
    return caches


def _parse_location(payload: Any) -> tuple[Position, Position]:
    if not isinstance(payload, dict):
        raise ValueError("location must be an object")
    return Position.from_dict(payload["current"]), Position.from_dict(payload["previous"])


def _parse_positions(payload: Any) -> list[Position]:
    if not isinstance(payload, list):
        raise ValueError("poly must be a list")
    return [Position.from_dict(row) for row in payload]


def save_registry(store: KeyValueStore, registry: CacheRegistry) -> None:
    records = registry.records()
    store.set_item(CACHE_KEY, _dump([[hash_value, record.cell.to_dict()] for hash_value, record in records]))
    store.set_item(TOKEN_COUNT_KEY, _dump([[hash_value, record.mint_budget] for hash_value, record in records]))
    store.set_item(TOKEN_SERIAL_KEY, _dump([[hash_value, record.next_serial] for hash_value, record in records]))
    store.set_item(
        DEPOSIT_BOX_KEY,
        _dump([[hash_value, [token.to_dict() for token in tokens]] for hash_value, tokens in registry.ledgers().items()]),
    )


def load_registry(store: KeyValueStore, registry: CacheRegistry) -> CacheRegistry:
    """Populate ``registry`` from ``store``; each corrupt key falls back to its empty state."""
    caches = _load_key(store, CACHE_KEY, _parse_caches, {})
    budgets = _load_key(
        store,
        TOKEN_COUNT_KEY,
        lambda payload: _parse_pairs(payload, _parse_non_negative_int, field_name=TOKEN_COUNT_KEY),
        {},
    )
    serials = _load_key(
        store,
        TOKEN_SERIAL_KEY,
        lambda payload: _parse_pairs(payload, _parse_non_negative_int, field_name=TOKEN_SERIAL_KEY),
        {},
    )
    ledgers = _load_key(
        store,
        DEPOSIT_BOX_KEY,
        lambda payload: _parse_pairs(payload, _parse_tokens, field_name=DEPOSIT_BOX_KEY),
        {},
    )

    registry.reset()
    for hash_value, cell in sorted(caches.items(), key=lambda item: item[1]):
        initial = registry.initial_budget(cell)
        budget = budgets.get(hash_value, initial)
        next_serial = serials.get(hash_value, max(initial - budget, 0))
        registry.restore_cache(hash_value, cell, mint_budget=budget, next_serial=next_serial)

    for hash_value in sorted(ledgers):
        if hash_value not in registry:
            _warn(f"deposit box {hash_value!r} has no registered cache; re-registering it")
            registry.ensure_exists(cell_from_hash(hash_value))
        registry.restore_ledger(hash_value, ledgers[hash_value])
    return registry


def save_player(store: KeyValueStore, player: PlayerState) -> None:
    store.set_item(INVENTORY_KEY, _dump([token.to_dict() for token in player.inventory]))
    store.set_item(LOCATION_KEY, _dump({"current": player.current.to_dict(), "previous": player.previous.to_dict()}))
    store.set_item(POLY_KEY, _dump([position.to_dict() for position in player.trail]))


def load_player(store: KeyValueStore, spawn: Position) -> PlayerState:
    player = PlayerState.at(spawn)
    player.inventory = _load_key(store, INVENTORY_KEY, _parse_tokens, [])
    location = _load_key(store, LOCATION_KEY, _parse_location, None)
    if location is not None:
        player.current, player.previous = location
    trail = _load_key(store, POLY_KEY, _parse_positions, None)
    if trail is not None:
        player.trail = trail
    return player
