from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from cachecrawler.cli.pygame_viewer import DEFAULT_STORE_PATH, run_pygame_viewer
from cachecrawler.cli.viewer import run_demo
from cachecrawler.content.config import DEFAULT_CONFIG_PATH, GameConfig, load_game_config_json
from cachecrawler.content.io import JsonFileStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="Cachecrawler launcher.")
    parser.add_argument("--config-path", default=DEFAULT_CONFIG_PATH, help="Game config JSON path.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="Persistent store JSON path.")
    parser.add_argument("--text", action="store_true", help="Play in the terminal instead of the pygame window.")
    parser.add_argument("--geolocation-file", default=None, help="JSON {lat, lng} file polled in geolocation mode.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.text:
        config = load_game_config_json(args.config_path) if Path(args.config_path).exists() else GameConfig()
        run_demo(config, JsonFileStore(args.store_path))
        return 0
    return run_pygame_viewer(
        args.config_path,
        store_path=args.store_path,
        geolocation_file=args.geolocation_file,
        headless=args.headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
