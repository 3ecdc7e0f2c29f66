"""
LiveCoord WebSocket Routes.

Live-reload channel between the coordinator and open pages.
Requires Python 3.11+.
"""

import asyncio
import itertools
from pathlib import Path

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from pydantic import ValidationError

from api.dependencies import get_connection_manager
from protocol.messages import (
    ClientMessage,
    Connect,
    Disconnect,
    FsNotify,
    Scroll,
    dump_client_message,
    parse_client_message,
)
from utils.logger import get_logger

router = APIRouter()
logger = get_logger("api.websocket")

CLIENT_SCRIPT = Path(__file__).parent.parent / "client" / "livecoord.js"


class ClientConnection:
    """
    One connected page.

    Outgoing frames go through a bounded queue drained by a dedicated
    sender task, so a slow socket only ever delays itself.
    """

    def __init__(self, connection_id: int, websocket: WebSocket, queue_size: int) -> None:
        self.id = connection_id
        self.websocket = websocket
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._sender: asyncio.Task[None] | None = None
        self.closed = False

    def start(self) -> None:
        self._sender = asyncio.create_task(self._pump(), name=f"ws-sender-{self.id}")

    def enqueue(self, text: str) -> bool:
        """Queue a frame; False when the connection is closed or backed up."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            return False
        return True

    async def _pump(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.warning("client_send_failed", client_id=self.id, error=str(e))
                self.closed = True
                return

    async def stop(self) -> None:
        self.closed = True
        if self._sender is not None and not self._sender.done():
            self._sender.cancel()
            try:
                await self._sender
            except asyncio.CancelledError:
                pass

    async def close(self, code: int = 1001) -> None:
        await self.stop()
        try:
            await self.websocket.close(code=code)
        except Exception as e:
            logger.debug("client_close_failed", client_id=self.id, error=str(e))


class ConnectionManager:
    """
    Registry of connected pages.

    The registry is only changed by connect/disconnect (and by dropping
    a client that cannot keep up); broadcasts iterate over a snapshot.
    """

    def __init__(self, queue_size: int = 256) -> None:
        """
        Initialize the connection manager.

        Args:
            queue_size: Outgoing frames buffered per client before it is dropped
        """
        self._queue_size = queue_size
        self._connections: dict[int, ClientConnection] = {}
        self._ids = itertools.count(1)
        self._closing: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> ClientConnection:
        """
        Accept and register a new WebSocket connection.

        Args:
            websocket: The WebSocket connection to register
        """
        await websocket.accept()
        connection = ClientConnection(next(self._ids), websocket, self._queue_size)
        connection.start()
        self._connections[connection.id] = connection
        logger.info(
            "websocket_connected",
            client_id=connection.id,
            total_connections=len(self._connections),
        )
        return connection

    async def disconnect(self, connection: ClientConnection) -> None:
        """Unregister a connection. Safe to call more than once."""
        known = self._connections.pop(connection.id, None)
        await connection.stop()
        if known is not None:
            logger.info(
                "websocket_disconnected",
                client_id=connection.id,
                total_connections=len(self._connections),
            )

    def _drop(self, connection: ClientConnection) -> None:
        self._connections.pop(connection.id, None)
        logger.warning("client_dropped", client_id=connection.id)
        task = asyncio.create_task(connection.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def broadcast(self, message: ClientMessage, exclude: int | None = None) -> int:
        """
        Queue a message for every connected client.

        Never waits on a socket. Clients that are closed or whose
        queue is full are dropped.

        Args:
            message: The message to broadcast
            exclude: Connection id to skip (usually the sender)

        Returns:
            Number of clients the message was queued for
        """
        if not self._connections:
            return 0

        text = dump_client_message(message)
        delivered = 0
        for connection in list(self._connections.values()):
            if connection.id == exclude:
                continue
            if connection.enqueue(text):
                delivered += 1
            else:
                self._drop(connection)
        return delivered

    def send_to(self, connection: ClientConnection, message: ClientMessage) -> bool:
        """Queue a message for a single client."""
        return connection.enqueue(dump_client_message(message))

    async def close_all(self) -> None:
        """Close every connection."""
        connections = list(self._connections.values())
        self._connections.clear()
        for connection in connections:
            await connection.close()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        if connections:
            logger.info("websocket_connections_closed", count=len(connections))

    @property
    def connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    manager: ConnectionManager = Depends(get_connection_manager),
) -> None:
    """
    Live-reload endpoint.

    Clients receive:
    - Connect once they are registered
    - FsNotify when the page has to reload
    - Scroll positions reported by other clients
    """
    connection = await manager.connect(websocket)

    # Confirm registration; clients treat it as informational
    manager.send_to(connection, Connect())

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=frame.get("code", 1000))
            data = frame.get("text")
            if data is None:
                data = frame.get("bytes") or b""
            try:
                message = parse_client_message(data)
            except ValidationError as e:
                logger.warning(
                    "invalid_client_message",
                    client_id=connection.id,
                    error=str(e),
                )
                continue
            await handle_client_message(manager, connection, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("websocket_error", client_id=connection.id, error=str(e))
    finally:
        await manager.disconnect(connection)


async def handle_client_message(
    manager: ConnectionManager,
    connection: ClientConnection,
    message: ClientMessage,
) -> None:
    """
    Handle one decoded client message.

    Supported message kinds:
    - Scroll: relayed to every other client
    - Connect / Disconnect: informational
    - FsNotify: only ever sent by the server, dropped
    """
    if isinstance(message, Scroll):
        await manager.broadcast(message, exclude=connection.id)

    elif isinstance(message, (Connect, Disconnect)):
        logger.debug("client_lifecycle", client_id=connection.id, kind=message.kind)

    elif isinstance(message, FsNotify):
        logger.warning("unexpected_client_fs_notify", client_id=connection.id)

    else:
        logger.warning("unhandled_client_message", client_id=connection.id, kind=message.kind)


@router.get("/client.js")
async def client_script() -> Response:
    """Browser runtime that follows reload and scroll messages."""
    return Response(
        content=CLIENT_SCRIPT.read_text(encoding="utf-8"),
        media_type="application/javascript",
    )
