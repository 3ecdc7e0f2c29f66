"""
LiveCoord Wire Messages.

Tagged unions for the client WebSocket channel and the supervised
server's stdout status lines. Every message is one JSON object
discriminated by its ``kind`` field.

Client messages carry their fields next to ``kind``::

    {"kind": "Scroll", "x": 0, "y": -100}
    {"kind": "FsNotify", "item": {"path": "...", "web_path": "...", "referer": null}}

Server output messages nest their fields under ``payload``::

    {"kind": "Listening", "payload": {"bind_address": "127.0.0.1:8090"}}

Requires Python 3.11+.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class WireModel(BaseModel):
    """Base for immutable wire models."""

    model_config = ConfigDict(frozen=True)


class ServedFile(WireModel):
    """A file reachable through the server."""

    path: str = Field(min_length=1, description="Path on disk")
    web_path: str = Field(description="URL path the file is served under")
    referer: str | None = None


# Client channel


class Connect(WireModel):
    kind: Literal["Connect"] = "Connect"


class Disconnect(WireModel):
    kind: Literal["Disconnect"] = "Disconnect"


class Scroll(WireModel):
    """Scroll position of the sending page."""

    kind: Literal["Scroll"] = "Scroll"
    x: float
    y: float


class FsNotify(WireModel):
    """A served file changed on disk."""

    kind: Literal["FsNotify"] = "FsNotify"
    item: ServedFile


ClientMessage = Annotated[
    Connect | Disconnect | Scroll | FsNotify,
    Field(discriminator="kind"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(text: str | bytes) -> ClientMessage:
    """
    Decode one client frame.

    Raises:
        pydantic.ValidationError: invalid JSON, unknown kind or bad fields
    """
    return _client_adapter.validate_json(text)


def dump_client_message(message: ClientMessage) -> str:
    """Encode one client frame."""
    return _client_adapter.dump_json(message).decode("utf-8")


# Supervised server stdout


class ListeningPayload(WireModel):
    bind_address: str


class Listening(WireModel):
    """The server is accepting connections on ``payload.bind_address``."""

    kind: Literal["Listening"] = "Listening"
    payload: ListeningPayload

    @property
    def bind_address(self) -> str:
        return self.payload.bind_address


# Single variant today. Becomes a discriminated union on "kind" once
# the server emits a second message type.
ServerOutputMessage = Listening

_output_adapter: TypeAdapter[ServerOutputMessage] = TypeAdapter(ServerOutputMessage)


def parse_output_message(line: str | bytes) -> ServerOutputMessage:
    """
    Decode one stdout line of the supervised server.

    Raises:
        pydantic.ValidationError: invalid JSON, unknown kind or bad fields
    """
    return _output_adapter.validate_json(line)
