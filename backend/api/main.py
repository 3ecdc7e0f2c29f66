"""
LiveCoord API Main Application.

FastAPI application wiring the watcher, the reload coordinator, the
supervised server and the live-reload channel.
Requires Python 3.11+.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes.static import ServedFiles
from api.routes.websocket import ConnectionManager, router as websocket_router
from reload.coordinator import ReloadCoordinator
from supervision.process import ProcessSupervisor
from utils.config import Settings, get_settings
from utils.logger import configure_logging, get_logger
from watcher.file_watcher import FileWatcher, ServedFileRegistry


# Initialize logging
configure_logging()
logger = get_logger("api")

ROUTE_PREFIX = "/__livecoord"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Starts the watcher and the supervised server; on shutdown drops the
    open batch, terminates the server and closes every client.
    """
    settings: Settings = app.state.settings
    coordinator: ReloadCoordinator = app.state.coordinator
    connections: ConnectionManager = app.state.connections
    watcher: FileWatcher = app.state.watcher

    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        root=str(settings.watcher.root),
        debounce_delay_ms=settings.watcher.debounce_delay_ms,
    )

    coordinator.attach(asyncio.get_running_loop())

    if settings.watcher.enabled:
        try:
            watcher.start()
        except OSError as e:
            logger.error("file_watcher_start_failed", path=str(settings.watcher.root), error=str(e))

    supervisor: ProcessSupervisor | None = app.state.supervisor
    if supervisor is not None:
        try:
            await supervisor.start()
        except OSError as e:
            logger.error("process_start_failed", command=settings.supervisor.command, error=str(e))

    yield

    logger.info("shutting_down_application")
    watcher.stop()
    coordinator.shutdown()
    if supervisor is not None:
        await supervisor.stop()
    await connections.close_all()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment-derived ones

    Returns:
        Configured FastAPI instance
    """
    settings = settings or get_settings()

    application = FastAPI(
        title=settings.app_name,
        description="Live-reload coordinator for a served directory",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )

    connections = ConnectionManager(queue_size=settings.server.client_queue_size)
    coordinator = ReloadCoordinator.from_settings(settings, connections)
    registry = ServedFileRegistry(settings.watcher.root)
    watcher = FileWatcher(
        root_path=settings.watcher.root,
        debouncer=coordinator.debouncer,
        ignore_patterns=settings.watcher.ignore_patterns,
        recursive=settings.watcher.recursive,
        registry=registry,
    )

    supervisor = None
    if settings.supervisor.command:
        supervisor = ProcessSupervisor(
            command=settings.supervisor.command,
            terminate_timeout=settings.supervisor.terminate_timeout,
        )

    application.state.settings = settings
    application.state.connections = connections
    application.state.coordinator = coordinator
    application.state.watcher = watcher
    application.state.supervisor = supervisor

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development else "An unexpected error occurred",
            },
        )

    # Health check endpoint
    @application.get(f"{ROUTE_PREFIX}/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        decision = coordinator.last_decision
        return {
            "status": "healthy",
            "version": settings.app_version,
            "connections": connections.connection_count,
            "watching": watcher.is_running,
            "server_bind_address": supervisor.bind_address if supervisor else None,
            "last_decision": decision.value if decision else None,
        }

    application.include_router(websocket_router, prefix=ROUTE_PREFIX, tags=["LiveReload"])

    # Everything else is the watched directory; must be mounted last
    if settings.server.serve_static:
        application.mount(
            "/",
            ServedFiles(
                registry=registry,
                script_src=f"{ROUTE_PREFIX}/client.js",
                html=True,
                check_dir=False,
            ),
            name="served",
        )

    return application


# Create the application instance
app = create_app()
