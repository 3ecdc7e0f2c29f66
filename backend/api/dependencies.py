"""
LiveCoord API Dependencies.

Shared dependencies for FastAPI routes. The coordinator objects are
created by ``create_app`` and live on ``app.state``.
Requires Python 3.11+.
"""

from typing import Any

from fastapi.requests import HTTPConnection


def get_connection_manager(connection: HTTPConnection) -> Any:
    """The application's ConnectionManager."""
    return connection.app.state.connections


def get_coordinator(connection: HTTPConnection) -> Any:
    """The application's ReloadCoordinator."""
    return connection.app.state.coordinator


def get_supervisor(connection: HTTPConnection) -> Any:
    """The supervised server process, or None when none is configured."""
    return getattr(connection.app.state, "supervisor", None)
