"""
LiveCoord Protocol Package.

Wire messages exchanged with browser clients and the supervised server.
Requires Python 3.11+.
"""

from protocol.messages import (
    ClientMessage,
    Connect,
    Disconnect,
    FsNotify,
    Listening,
    Scroll,
    ServedFile,
    ServerOutputMessage,
    dump_client_message,
    parse_client_message,
    parse_output_message,
)

__all__ = [
    "ClientMessage",
    "Connect",
    "Disconnect",
    "FsNotify",
    "Listening",
    "Scroll",
    "ServedFile",
    "ServerOutputMessage",
    "dump_client_message",
    "parse_client_message",
    "parse_output_message",
]
