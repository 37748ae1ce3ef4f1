from __future__ import annotations

import argparse
import importlib.metadata
import json
import os
import platform
import sys
import time
from pathlib import Path
from typing import Any

from cachecrawler.content.config import DEFAULT_CONFIG_PATH, GameConfig, load_game_config_json
from cachecrawler.content.io import JsonFileStore
from cachecrawler.sim.core import GameSession
from cachecrawler.sim.grid import Cell, Position, cell_center, cell_hash
from cachecrawler.sim.hash import session_hash
from cachecrawler.sim.visibility import InMemoryRenderer

CELL_PIXELS = 36
WINDOW_SIZE = (1040, 720)
PANEL_WIDTH = 380
VIEWPORT_MARGIN = 12
FRAME_SECONDS = 1.0 / 30.0
DEFAULT_STORE_PATH = "saves/cachecrawler_store.json"

BACKGROUND_COLOR = (22, 24, 30)
GRID_COLOR = (40, 42, 52)
PLAYER_COLOR = (255, 243, 130)
TRAIL_COLOR = (80, 140, 255)
PANEL_COLOR = (24, 26, 36)
TEXT_COLOR = (225, 225, 235)

KEY_ACTIONS: dict[str, tuple[str, str]] = {
    "up": ("move", "north"),
    "down": ("move", "south"),
    "left": ("move", "west"),
    "right": ("move", "east"),
    "w": ("move", "north"),
    "s": ("move", "south"),
    "a": ("move", "west"),
    "d": ("move", "east"),
    "m": ("economy", "mint"),
    "p": ("economy", "deposit"),
    "t": ("economy", "withdraw"),
    "escape": ("close", ""),
    "g": ("geolocation", ""),
    "r": ("reset", ""),
}

pygame: Any | None = None


def _viewport_size() -> tuple[int, int]:
    return (WINDOW_SIZE[0] - PANEL_WIDTH - VIEWPORT_MARGIN * 3, WINDOW_SIZE[1] - VIEWPORT_MARGIN * 2)


def _viewport_center() -> tuple[int, int]:
    width, height = _viewport_size()
    return (VIEWPORT_MARGIN + width // 2, VIEWPORT_MARGIN + height // 2)


def _cell_rect(session: GameSession, cell: Cell) -> tuple[int, int, int, int]:
    """Pixel rectangle (x, y, w, h) of ``cell``; north is up, the player cell is centered."""
    center = session.player_cell
    center_x, center_y = _viewport_center()
    x = center_x + (cell.j - center.j) * CELL_PIXELS - CELL_PIXELS // 2
    y = center_y - (cell.i - center.i) * CELL_PIXELS - CELL_PIXELS // 2
    return (x, y, CELL_PIXELS, CELL_PIXELS)


def _cell_at_pixel(session: GameSession, pixel_x: int, pixel_y: int) -> Cell:
    center = session.player_cell
    center_x, center_y = _viewport_center()
    dj = (pixel_x - center_x + CELL_PIXELS // 2) // CELL_PIXELS
    di = (center_y - pixel_y + CELL_PIXELS // 2) // CELL_PIXELS
    return Cell(center.i + di, center.j + dj)


def _position_pixel(session: GameSession, position: Position) -> tuple[int, int]:
    tile = session.config.tile_degrees
    origin = cell_center(session.player_cell, tile)
    center_x, center_y = _viewport_center()
    return (
        int(center_x + (position.lng - origin.lng) / tile * CELL_PIXELS),
        int(center_y - (position.lat - origin.lat) / tile * CELL_PIXELS),
    )


def apply_key_action(session: GameSession, key_name: str) -> str | None:
    """Apply a key press; returns a status line when the action produced one."""
    action = KEY_ACTIONS.get(key_name)
    if action is None:
        return None
    kind, argument = action
    if kind == "move":
        if not session.move(argument):
            return "movement disabled while a cache is open or geolocation is on"
        return None
    if kind == "economy":
        if session.open_cache_hash is None:
            return "open a cache first"
        getattr(session, argument)(session.open_cache_hash)
        return session.recent_message()
    if kind == "close":
        session.close_cache()
        return None
    if kind == "geolocation":
        session.set_geolocation_enabled(not session.geolocation_enabled)
        return f"geolocation {'on' if session.geolocation_enabled else 'off'}"
    if kind == "reset":
        session.reset()
        return "game state reset"
    return None


def apply_click(session: GameSession, pixel_x: int, pixel_y: int) -> str | None:
    cell = _cell_at_pixel(session, pixel_x, pixel_y)
    hash_value = cell_hash(cell)
    renderer = session.renderer
    if not isinstance(renderer, InMemoryRenderer) or renderer.marker_at(cell) is None:
        return None
    if session.interaction_open:
        session.close_cache()
    session.open_cache(hash_value)
    return f"opened cache ({cell.i},{cell.j})"


def _read_geolocation_fix(path: str | None) -> Position | None:
    if path is None:
        return None
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return Position.from_dict(payload)
    except (OSError, ValueError) as exc:
        print(f"[cachecrawler.viewer] geolocation fix unavailable: {exc}", file=sys.stderr)
        return None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m cachecrawler.cli.pygame_viewer",
        description="Run the Cachecrawler pygame viewer.",
    )
    parser.add_argument("--config-path", default=DEFAULT_CONFIG_PATH, help="Game config JSON path.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="Persistent store JSON path.")
    parser.add_argument(
        "--geolocation-file",
        default=None,
        help="JSON file holding {lat, lng}; polled while geolocation is toggled on (G).",
    )
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[cachecrawler.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _load_config(config_path: str) -> GameConfig:
    if Path(config_path).exists():
        return load_game_config_json(config_path)
    print(f"[cachecrawler.viewer] config {config_path} not found; using defaults")
    return GameConfig()


def _build_viewer_session(config_path: str, store_path: str) -> GameSession:
    config = _load_config(config_path)
    session = GameSession.restore(config, JsonFileStore(store_path), renderer=InMemoryRenderer())
    print(
        "[cachecrawler.viewer] loaded "
        f"store={store_path} caches={len(session.registry)} "
        f"inventory={session.player.inventory_size} "
        f"session_hash={session_hash(session)}"
    )
    return session


def _draw_session(screen: Any, font: Any, session: GameSession, status_message: str | None) -> None:
    renderer = session.renderer
    if not isinstance(renderer, InMemoryRenderer):
        raise ValueError("pygame viewer requires an InMemoryRenderer")

    screen.fill(BACKGROUND_COLOR)
    width, height = _viewport_size()
    viewport = pygame.Rect(VIEWPORT_MARGIN, VIEWPORT_MARGIN, width, height)
    pygame.draw.rect(screen, GRID_COLOR, viewport, 1)
    screen.set_clip(viewport)

    for marker in renderer.materialized:
        rect = pygame.Rect(*_cell_rect(session, marker.cell))
        pygame.draw.rect(screen, marker.color, rect)
        if session.open_cache_hash == marker.cell_hash:
            pygame.draw.rect(screen, TEXT_COLOR, rect, 2)

    if len(session.player.trail) > 1:
        points = [_position_pixel(session, position) for position in session.player.trail]
        pygame.draw.lines(screen, TRAIL_COLOR, False, points, 2)
    pygame.draw.circle(screen, PLAYER_COLOR, _position_pixel(session, session.player.current), 8)
    screen.set_clip(None)

    panel_x = VIEWPORT_MARGIN * 2 + width
    panel = pygame.Rect(panel_x, VIEWPORT_MARGIN, PANEL_WIDTH, height)
    pygame.draw.rect(screen, PANEL_COLOR, panel)

    cell = session.player_cell
    lines = [
        f"cell ({cell.i},{cell.j})",
        f"inventory: {session.player.inventory_size}",
        f"geolocation: {'on' if session.geolocation_enabled else 'off'}",
        "",
    ]
    if session.open_cache_hash is not None:
        cache_panel = session.cache_panel(session.open_cache_hash)
        lines.extend(
            [
                f"cache ({cache_panel.cell.i},{cache_panel.cell.j})",
                f"available for mint: {cache_panel.mint_budget}",
                f"deposited tokens: {cache_panel.ledger_size}",
                "M mint  P deposit  T withdraw  Esc close",
            ]
        )
    else:
        lines.append("click a cache to open it")
    lines.extend(["", session.recent_message(), status_message or ""])
    for index, line in enumerate(lines):
        screen.blit(font.render(line, True, TEXT_COLOR), (panel_x + 10, VIEWPORT_MARGIN + 10 + index * 22))


def run_pygame_viewer(
    config_path: str = DEFAULT_CONFIG_PATH,
    *,
    store_path: str = DEFAULT_STORE_PATH,
    geolocation_file: str | None = None,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[cachecrawler.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(f"[cachecrawler.viewer] failed during pygame.init(): {exc}", file=sys.stderr)
        return 1

    try:
        session = _build_viewer_session(config_path, store_path)
    except (OSError, ValueError) as exc:
        print(f"[cachecrawler.viewer] failed to initialize session: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    try:
        pygame_module.display.set_caption("Cachecrawler")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[cachecrawler.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: use --headless without a display.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    if headless:
        pygame_module.quit()
        return 0

    font = pygame_module.font.SysFont("monospace", 16)
    status_message: str | None = None
    last_poll = time.monotonic()
    running = True
    while running:
        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN:
                status_message = apply_key_action(session, pygame_module.key.name(event.key))
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                status_message = apply_click(session, *event.pos)

        now = time.monotonic()
        if session.geolocation_enabled and now - last_poll >= session.config.geolocation_interval_seconds:
            last_poll = now
            fix = _read_geolocation_fix(geolocation_file)
            if fix is not None:
                session.poll_geolocation(fix)

        _draw_session(screen, font, session, status_message)
        pygame_module.display.flip()
        time.sleep(FRAME_SECONDS)

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    return run_pygame_viewer(
        args.config_path,
        store_path=args.store_path,
        geolocation_file=args.geolocation_file,
        headless=args.headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
