from __future__ import annotations

from cachecrawler.content.config import GameConfig
from cachecrawler.content.io import KeyValueStore, MemoryStore
from cachecrawler.sim.core import GameSession
from cachecrawler.sim.grid import Cell, Position, cell_hash
from cachecrawler.sim.visibility import InMemoryRenderer

PLAYER_GLYPH = "@"
CACHE_GLYPH = "C"
OPEN_CACHE_GLYPH = "O"
EMPTY_GLYPH = "."
HELP_TEXT = (
    "Commands: n | s | e | w | open <i> <j> | mint | deposit | withdraw | close | "
    "geo on|off | goto <lat> <lng> | reset | show | quit"
)


class AsciiViewer:
    """Read-only projection of the materialized window around the player."""

    def render(self, session: GameSession) -> str:
        renderer = session.renderer
        if not isinstance(renderer, InMemoryRenderer):
            raise ValueError("AsciiViewer requires an InMemoryRenderer")

        center = session.player_cell
        radius = session.config.neighborhood_size
        cache_cells = renderer.materialized_cells()
        lines = [
            f"cell=({center.i},{center.j}) inventory={session.player.inventory_size} "
            f"caches={len(session.registry)} visible={len(cache_cells)} "
            f"geolocation={'on' if session.geolocation_enabled else 'off'}"
        ]
        for di in range(radius - 1, -radius - 1, -1):
            row: list[str] = []
            for dj in range(-radius, radius):
                cell = Cell(center.i + di, center.j + dj)
                if cell == center:
                    row.append(PLAYER_GLYPH)
                elif session.open_cache_hash == cell_hash(cell):
                    row.append(OPEN_CACHE_GLYPH)
                elif cell in cache_cells:
                    row.append(CACHE_GLYPH)
                else:
                    row.append(EMPTY_GLYPH)
            lines.append(" ".join(row))

        if session.open_cache_hash is not None:
            panel = session.cache_panel(session.open_cache_hash)
            lines.append(
                f"cache ({panel.cell.i},{panel.cell.j}) mintable={panel.mint_budget} "
                f"deposited={panel.ledger_size} inventory={panel.inventory_size}"
            )
        message = session.recent_message()
        if message:
            lines.append(message)
        return "\n".join(lines)


class SessionController:
    """Text command adapter; the session remains the source of truth."""

    def __init__(self, session: GameSession, viewer: AsciiViewer | None = None) -> None:
        self.session = session
        self.viewer = viewer or AsciiViewer()

    def handle(self, raw: str) -> str | None:
        """Run one command line; returns text to print, or None to quit."""
        parts = raw.strip().split()
        if not parts:
            return ""
        verb = parts[0].lower()
        session = self.session

        if verb in {"quit", "exit"}:
            return None
        if verb == "show":
            return self.viewer.render(session)
        if verb in {"n", "s", "e", "w", "up", "down", "left", "right"} and len(parts) == 1:
            if not session.move(verb):
                return "movement disabled while a cache is open or geolocation is on"
            return self.viewer.render(session)
        if verb == "open" and len(parts) == 3:
            try:
                i, j = int(parts[1]), int(parts[2])
            except ValueError:
                return "usage: open <i> <j>"
            return self._open(i, j)
        if verb == "close" and len(parts) == 1:
            session.close_cache()
            return self.viewer.render(session)
        if verb in {"mint", "deposit", "withdraw"} and len(parts) == 1:
            if session.open_cache_hash is None:
                return "no cache is open"
            getattr(session, verb)(session.open_cache_hash)
            return self.viewer.render(session)
        if verb == "geo" and len(parts) == 2 and parts[1] in {"on", "off"}:
            session.set_geolocation_enabled(parts[1] == "on")
            return f"geolocation {parts[1]}"
        if verb == "goto" and len(parts) == 3:
            try:
                position = Position(float(parts[1]), float(parts[2]))
            except ValueError:
                return "usage: goto <lat> <lng>"
            if not session.poll_geolocation(position):
                return "geolocation fix ignored"
            return self.viewer.render(session)
        if verb == "reset" and len(parts) == 1:
            session.reset()
            return self.viewer.render(session)
        return "unknown command"

    def _open(self, i: int, j: int) -> str:
        hash_value = cell_hash(Cell(i, j))
        if hash_value not in self.session.registry:
            return f"no cache at ({i},{j})"
        if self.session.interaction_open:
            return "close the open cache first"
        self.session.open_cache(hash_value)
        return self.viewer.render(self.session)


def build_text_session(config: GameConfig, store: KeyValueStore | None = None) -> GameSession:
    return GameSession.restore(config, store if store is not None else MemoryStore(), renderer=InMemoryRenderer())


def run_demo(config: GameConfig | None = None, store: KeyValueStore | None = None) -> None:
    session = build_text_session(config or GameConfig(), store)
    controller = SessionController(session)

    print(f"Cachecrawler demo. {HELP_TEXT}")
    print(controller.viewer.render(session))

    while True:
        output = controller.handle(input("> "))
        if output is None:
            break
        if output:
            print(output)


if __name__ == "__main__":
    run_demo()
