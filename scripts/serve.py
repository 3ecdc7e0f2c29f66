#!/usr/bin/env python3
"""
LiveCoord Server Script.

Serves a directory and reloads connected browsers when it changes.
Requires Python 3.11+.

Usage:
    python scripts/serve.py ./site --port 8090
    python scripts/serve.py ./site --bind 0.0.0.0:3000 --inject "*.css,*.svg"
"""

import argparse
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import uvicorn
from pydantic import ValidationError

from utils.config import ServerSettings, get_settings
from utils.logger import configure_logging, get_logger


def _csv(value: str) -> list[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Serve a directory with live reload",
    )
    parser.add_argument(
        "root",
        type=Path,
        nargs="?",
        default=None,
        help="Directory to serve and watch (default: current directory)",
    )
    parser.add_argument("--host", help="Interface to bind")
    parser.add_argument("--port", type=int, help="Port to bind")
    parser.add_argument("--bind", help="host:port, overrides --host and --port")
    parser.add_argument("--debounce", type=int, help="Quiet window in milliseconds")
    parser.add_argument("--inject", type=_csv, help="Comma-separated hot-injectable patterns")
    parser.add_argument("--no-static", action="store_true", help="Only run the live-reload channel")
    parser.add_argument(
        "--server-command",
        help="Native server to supervise, e.g. 'bs3 --port 9000'",
    )
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")

    args = parser.parse_args()

    settings = get_settings()
    if args.root is not None:
        if not args.root.is_dir():
            parser.error(f"not a directory: {args.root}")
        settings.watcher.root = args.root
    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.bind:
        try:
            settings.server = ServerSettings.model_validate(
                {**settings.server.model_dump(), "bind_address": args.bind}
            )
        except ValidationError as e:
            parser.error(str(e))
    if args.debounce:
        settings.watcher.debounce_delay_ms = args.debounce
    if args.inject:
        settings.reload.inject_patterns = args.inject
    if args.no_static:
        settings.server.serve_static = False
    if args.server_command:
        settings.supervisor.command = args.server_command.split()

    if args.log_format:
        settings.logging.format = args.log_format

    configure_logging()
    logger = get_logger("serve")

    from api.main import create_app

    app = create_app(settings)
    host = settings.server.effective_host
    port = settings.server.effective_port
    logger.info("serving", root=str(settings.watcher.root.resolve()), url=f"http://{host}:{port}")

    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
