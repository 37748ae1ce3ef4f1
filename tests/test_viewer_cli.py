import json
from pathlib import Path

import pytest

import cachecrawler.cli.play as play
from cachecrawler.cli.pygame_viewer import (
    DEFAULT_STORE_PATH,
    _build_parser,
    _cell_at_pixel,
    _cell_rect,
    _draw_session,
    _read_geolocation_fix,
    apply_click,
    apply_key_action,
)
from cachecrawler.cli.viewer import AsciiViewer, SessionController, build_text_session
from cachecrawler.content.config import DEFAULT_CONFIG_PATH, GameConfig
from cachecrawler.content.io import MemoryStore
from cachecrawler.sim.core import GameSession
from cachecrawler.sim.grid import Cell, Position


def _dense_session() -> GameSession:
    config = GameConfig(tile_degrees=1.0, neighborhood_size=3, spawn_probability=1.0, spawn=Position(0.5, 0.5))
    return build_text_session(config, MemoryStore())


class _NullRenderer:
    def create_marker(self, cell, bounds, color):
        return object()

    def release_marker(self, marker) -> None:
        return None


def test_ascii_viewer_draws_player_and_caches() -> None:
    session = _dense_session()

    lines = AsciiViewer().render(session).splitlines()
    grid = [line.split() for line in lines[1:7]]

    assert lines[0].startswith("cell=(0,0) inventory=0")
    assert len(grid) == 6 and all(len(row) == 6 for row in grid)
    # row 0 is i=+2, column 0 is j=-3; the player sits at i=0, j=0
    assert grid[2][3] == "@"
    assert sum(row.count("C") for row in grid) == 35


def test_ascii_viewer_requires_in_memory_renderer() -> None:
    session = GameSession(GameConfig(), renderer=_NullRenderer())

    with pytest.raises(ValueError, match="InMemoryRenderer"):
        AsciiViewer().render(session)


def test_controller_open_mint_close_flow() -> None:
    controller = SessionController(_dense_session())
    session = controller.session

    controller.handle("n")
    assert session.player_cell == Cell(1, 0)

    opened = controller.handle("open 0 0")
    assert "O" in opened
    assert "cache (0,0) mintable=" in opened
    assert controller.handle("s") == "movement disabled while a cache is open or geolocation is on"
    assert controller.handle("open 1 1") == "close the open cache first"

    minted = controller.handle("mint")
    assert minted.splitlines()[-1] == "Player generated token: {0:0:0}"
    assert session.player.inventory_size == 1

    controller.handle("close")
    assert controller.handle("deposit") == "no cache is open"


def test_controller_rejects_bad_input() -> None:
    controller = SessionController(_dense_session())

    assert controller.handle("") == ""
    assert controller.handle("dance") == "unknown command"
    assert controller.handle("open x y") == "usage: open <i> <j>"
    assert controller.handle("open 99 99") == "no cache at (99,99)"
    assert controller.handle("goto north south") == "usage: goto <lat> <lng>"
    assert controller.handle("quit") is None


def test_controller_geolocation_commands() -> None:
    controller = SessionController(_dense_session())
    session = controller.session

    assert controller.handle("goto 5.5 5.5") == "geolocation fix ignored"
    assert controller.handle("geo on") == "geolocation on"
    assert controller.handle("e") == "movement disabled while a cache is open or geolocation is on"

    controller.handle("goto 5.5 5.5")
    assert session.player_cell == Cell(5, 5)

    controller.handle("geo off")
    controller.handle("reset")
    assert session.player_cell == Cell(0, 0)


def test_play_launcher_delegates_to_pygame_viewer(monkeypatch) -> None:
    calls: list[tuple[str, dict]] = []

    def _fake_viewer(config_path: str, **kwargs) -> int:
        calls.append((config_path, kwargs))
        return 7

    monkeypatch.setattr(play, "run_pygame_viewer", _fake_viewer)

    assert play.main(["--headless", "--store-path", "custom.json"]) == 7
    assert calls == [
        (
            DEFAULT_CONFIG_PATH,
            {"store_path": "custom.json", "geolocation_file": None, "headless": True},
        )
    ]


def test_play_launcher_text_mode_persists_store(monkeypatch, tmp_path: Path) -> None:
    store_path = tmp_path / "store.json"
    monkeypatch.setattr("builtins.input", lambda prompt: "quit")
    monkeypatch.setattr(play, "run_pygame_viewer", lambda *args, **kwargs: pytest.fail("pygame viewer launched"))

    assert play.main(["--text", "--store-path", str(store_path)]) == 0

    items = json.loads(store_path.read_text(encoding="utf-8"))["items"]
    assert {"cache", "inventory", "location", "poly"} <= set(items)


def test_pygame_viewer_parser_defaults() -> None:
    args = _build_parser().parse_args([])

    assert args.config_path == DEFAULT_CONFIG_PATH
    assert args.store_path == DEFAULT_STORE_PATH
    assert args.geolocation_file is None
    assert args.headless is False


def test_cell_pixel_mapping_round_trips() -> None:
    session = _dense_session()

    for cell in [Cell(0, 0), Cell(2, -3), Cell(-3, 1)]:
        x, y, width, height = _cell_rect(session, cell)
        assert _cell_at_pixel(session, x + width // 2, y + height // 2) == cell

    north_x, north_y, _, _ = _cell_rect(session, Cell(1, 0))
    center_x, center_y, _, _ = _cell_rect(session, Cell(0, 0))
    assert north_x == center_x and north_y < center_y


def test_key_actions_drive_session() -> None:
    session = _dense_session()

    assert apply_key_action(session, "up") is None
    assert session.player_cell == Cell(1, 0)
    assert apply_key_action(session, "m") == "open a cache first"
    assert apply_key_action(session, "f12") is None
    assert apply_key_action(session, "g") == "geolocation on"
    assert apply_key_action(session, "left") == "movement disabled while a cache is open or geolocation is on"
    assert apply_key_action(session, "r") == "game state reset"
    assert session.player_cell == Cell(0, 0)


def test_click_opens_cache_and_key_mints_from_it() -> None:
    session = _dense_session()
    x, y, width, height = _cell_rect(session, Cell(-1, 2))

    assert apply_click(session, x + width // 2, y + height // 2) == "opened cache (-1,2)"
    assert session.open_cache_hash == "-1,2"
    assert apply_key_action(session, "m") == "Player generated token: {-1:2:0}"
    assert apply_key_action(session, "escape") is None
    assert session.open_cache_hash is None


def test_click_outside_window_does_nothing() -> None:
    session = _dense_session()
    x, y, _, _ = _cell_rect(session, Cell(40, 40))

    assert apply_click(session, x, y) is None
    assert session.open_cache_hash is None


def test_geolocation_fix_file(tmp_path: Path, capsys) -> None:
    good = tmp_path / "fix.json"
    good.write_text(json.dumps({"lat": 2.5, "lng": -1.5}), encoding="utf-8")
    bad = tmp_path / "broken.json"
    bad.write_text("{", encoding="utf-8")

    assert _read_geolocation_fix(str(good)) == Position(2.5, -1.5)
    assert _read_geolocation_fix(None) is None
    assert _read_geolocation_fix(str(bad)) is None
    assert "geolocation fix unavailable" in capsys.readouterr().err


def test_draw_session_rejects_renderers_it_cannot_read() -> None:
    session = GameSession(GameConfig(), renderer=_NullRenderer())

    with pytest.raises(ValueError, match="InMemoryRenderer"):
        _draw_session(object(), object(), session, None)
