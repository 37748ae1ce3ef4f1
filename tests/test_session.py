import json

import pytest

from cachecrawler.content.config import NULL_ISLAND, GameConfig
from cachecrawler.content.io import CACHE_KEY, INVENTORY_KEY, LOCATION_KEY, POLY_KEY, MemoryStore
from cachecrawler.sim.core import GameSession
from cachecrawler.sim.grid import Cell, Position, cell_hash, neighborhood
from cachecrawler.sim.hash import registry_hash, session_hash
from cachecrawler.sim.registry import OUTCOME_EMPTY_INVENTORY, CacheRegistry
from cachecrawler.sim.visibility import InMemoryRenderer


def _config(**overrides) -> GameConfig:
    values = {
        "tile_degrees": 1.0,
        "neighborhood_size": 3,
        "spawn_probability": 0.5,
        "spawn": Position(0.5, 0.5),
    }
    values.update(overrides)
    return GameConfig(**values)


def _started(config: GameConfig | None = None, store: MemoryStore | None = None) -> GameSession:
    session = GameSession(config or _config(), renderer=InMemoryRenderer(), store=store)
    session.start()
    return session


def test_scan_spawns_exactly_the_oracle_selected_cells() -> None:
    config = _config()
    session = _started(config)
    reference = CacheRegistry(config.spawn_probability)

    expected = [
        cell_hash(cell)
        for cell in neighborhood(Cell(0, 0), config.neighborhood_size)
        if reference.consider_spawn(cell).spawned
    ]

    assert sorted(hash_value for hash_value, _ in session.registry.records()) == sorted(expected)
    assert session.renderer.materialized_cells() == {record.cell for _, record in session.registry.records()}


def test_rescanning_same_cell_does_not_reinitialize_budgets() -> None:
    session = _started(_config(spawn_probability=1.0))
    hash_value = cell_hash(Cell(0, 0))
    session.mint(hash_value)
    budget = session.registry.get_mint_budget(hash_value)

    session.scan_neighborhood()

    assert session.registry.get_mint_budget(hash_value) == budget


def test_movement_evicts_oldest_batch_beyond_window() -> None:
    session = _started(_config(spawn_probability=1.0, neighborhood_size=1))

    for direction in ("north", "north", "east", "south"):
        assert session.move(direction) is True

    live = session.window.live_batches()
    assert len(live) == 2
    assert len(session.renderer.materialized) == sum(len(batch.markers) for batch in live) == 8
    assert session.player_cell == Cell(1, 1)
    assert len(session.registry) > 8


def test_move_updates_location_history_and_trail() -> None:
    session = _started()

    session.move("west")

    assert session.player.previous == Position(0.5, 0.5)
    assert session.player.current == Position(0.5, -0.5)
    assert session.player.trail == [Position(0.5, 0.5), Position(0.5, -0.5)]


def test_open_cache_blocks_movement_and_geolocation() -> None:
    session = _started(_config(spawn_probability=1.0))
    session.open_cache(cell_hash(Cell(0, 0)))

    assert session.move("north") is False
    session.set_geolocation_enabled(True)
    assert session.poll_geolocation(Position(5.5, 5.5)) is False
    assert session.player_cell == Cell(0, 0)

    session.close_cache()
    assert session.poll_geolocation(Position(5.5, 5.5)) is True
    assert session.player_cell == Cell(5, 5)


def test_geolocation_poll_is_ignored_while_disabled_and_locks_manual_moves() -> None:
    session = _started()

    assert session.poll_geolocation(Position(2.5, 2.5)) is False
    session.set_geolocation_enabled(True)
    assert session.move("north") is False


def test_only_one_cache_can_be_open() -> None:
    session = _started(_config(spawn_probability=1.0))
    session.open_cache(cell_hash(Cell(0, 0)))

    with pytest.raises(RuntimeError):
        session.open_cache(cell_hash(Cell(0, 1)))


def test_open_unknown_cache_raises() -> None:
    session = _started(_config(spawn_probability=0.0))

    with pytest.raises(KeyError):
        session.open_cache(cell_hash(Cell(0, 0)))
    assert session.interaction_open is False


def test_cache_panel_reports_display_counts() -> None:
    session = _started(_config(spawn_probability=1.0))
    hash_value = cell_hash(Cell(1, 1))
    session.mint(hash_value)
    session.deposit(hash_value)

    panel = session.open_cache(hash_value)

    assert panel.ledger_size == 1
    assert panel.mint_budget == session.registry.get_mint_budget(hash_value)
    assert panel.inventory_size == session.player.inventory_size


def test_economy_actions_persist_and_report_recent_message() -> None:
    store = MemoryStore()
    session = _started(_config(spawn_probability=1.0), store=store)
    hash_value = cell_hash(Cell(0, 0))

    result = session.mint(hash_value)

    assert result.token is not None
    assert session.recent_message() == "Player generated token: {0:0:0}"
    assert json.loads(store.get_item(INVENTORY_KEY)) == [{"i": 0, "j": 0, "serial": 0}]

    session.deposit(hash_value)
    assert session.recent_message() == "Player deposited token: {0:0:0}"
    assert json.loads(store.get_item(INVENTORY_KEY)) == []


def test_failed_deposit_reports_notice_and_changes_nothing() -> None:
    session = _started(_config(spawn_probability=1.0))

    result = session.deposit(cell_hash(Cell(0, 0)))

    assert result.outcome == OUTCOME_EMPTY_INVENTORY
    assert session.recent_message() == "No token in inventory"
    assert session.player.inventory == []
    assert session.registry.ledger_size(cell_hash(Cell(0, 0))) == 0
    assert session.get_action_trace()[-1]["outcome"] == OUTCOME_EMPTY_INVENTORY


def test_reset_reproduces_first_scan() -> None:
    store = MemoryStore()
    session = _started(store=store)
    first_registry = registry_hash(session.registry)
    first_cells = session.renderer.materialized_cells()

    session.move("north")
    session.move("east")
    some_hash = session.registry.records()[0][0]
    session.mint(some_hash)
    session.reset()

    assert registry_hash(session.registry) == first_registry
    assert session.renderer.materialized_cells() == first_cells
    assert session.player.inventory == []
    assert session.player.trail == [session.config.spawn]
    assert len(session.window) == 1
    assert session.action_trace == []
    assert json.loads(store.get_item(POLY_KEY)) == [{"lat": 0.5, "lng": 0.5}]


def test_restore_rebuilds_session_from_store() -> None:
    store = MemoryStore()
    session = _started(_config(spawn_probability=1.0), store=store)
    hash_value = cell_hash(Cell(0, 0))
    session.mint(hash_value)
    session.move("south")

    restored = GameSession.restore(_config(spawn_probability=1.0), store, renderer=InMemoryRenderer())

    assert registry_hash(restored.registry) == registry_hash(session.registry)
    assert restored.player.to_dict() == session.player.to_dict()
    assert json.loads(store.get_item(LOCATION_KEY))["previous"] == {"lat": 0.5, "lng": 0.5}
    assert len(json.loads(store.get_item(CACHE_KEY))) == len(session.registry)


def test_session_hash_is_deterministic_for_same_inputs() -> None:
    def run_once() -> str:
        session = _started()
        session.move("north")
        session.move("west")
        hash_value = session.registry.records()[0][0]
        session.mint(hash_value)
        session.deposit(hash_value)
        return session_hash(session)

    assert run_once() == run_once()


def test_repeated_moves_from_tile_corner_advance_one_cell_each() -> None:
    session = GameSession(GameConfig(spawn=NULL_ISLAND))
    session.start()

    for step in range(1, 41):
        assert session.move("north")
        assert session.player_cell == Cell(step, 0)
    for step in range(1, 41):
        assert session.move("west")
        assert session.player_cell == Cell(40, -step)
