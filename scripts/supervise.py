#!/usr/bin/env python3
"""
LiveCoord Supervise Script.

Runs a native server under the process supervisor and prints the
address it reports.
Requires Python 3.11+.

Usage:
    python scripts/supervise.py -- ../target/debug/bs3 .
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from supervision.process import ProcessSupervisor
from utils.config import get_settings
from utils.logger import configure_logging, get_logger


configure_logging()
logger = get_logger("supervise")


def _print_address(bind_address: str) -> None:
    print(f"Listening on http://{bind_address}", flush=True)


async def run(command: list[str], terminate_timeout: float) -> int:
    """Supervise ``command`` until it exits or we are interrupted."""
    supervisor = ProcessSupervisor(
        command=command,
        on_listening=_print_address,
        terminate_timeout=terminate_timeout,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    async with supervisor:
        exited = asyncio.create_task(supervisor.wait())
        interrupted = asyncio.create_task(stop.wait())
        await asyncio.wait({exited, interrupted}, return_when=asyncio.FIRST_COMPLETED)
        interrupted.cancel()

    returncode = supervisor.returncode
    logger.info("supervise_finished", returncode=returncode)
    return returncode or 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a native server under the LiveCoord supervisor",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Server command line")
    args = parser.parse_args()

    command = [part for part in args.command if part != "--"] or get_settings().supervisor.command
    if not command:
        parser.error("no server command given (pass one or set SUPERVISOR_COMMAND)")

    sys.exit(asyncio.run(run(command, get_settings().supervisor.terminate_timeout)))


if __name__ == "__main__":
    main()
