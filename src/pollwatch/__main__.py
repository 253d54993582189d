"""Command-line entry point for the polling watcher."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .exceptions import InvalidConfiguration
from .observers import ObserverRegistry
from .watcher import FileWatcher


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Poll a directory and report file changes")
    parser.add_argument(
        "--config",
        default="watch.yaml",
        help="Path to the YAML configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after this many poll cycles (overrides watch.max_iterations)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    config_path = Path(args.config)
    try:
        app_config = load_config(config_path)
        registry = ObserverRegistry.from_config(app_config.observers, directory=app_config.watch.directory)
        watcher = FileWatcher(app_config.watch, registry)
        if args.iterations is not None:
            watcher.set_max_iterations(args.iterations)
    except InvalidConfiguration as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    try:
        watcher.start()
    except KeyboardInterrupt:
        logging.info("Watcher interrupted by user")


if __name__ == "__main__":
    main()
