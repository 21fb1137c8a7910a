"""
Run the server: ``python -m src.backend [--config settings.json]``.

Bind host/port come from the settings file, ``.env`` or the environment
(``HOST``/``PORT``); command-line flags win over all of them.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from .app import create_app
from .settings.store import load_settings


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Task bundle download server")
    parser.add_argument("--config", type=Path, default=None, help="JSON settings file")
    parser.add_argument("--env-file", type=Path, default=None, help="dotenv file (default: .env)")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(config_path=args.config, env_file=args.env_file)
    if args.host:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
