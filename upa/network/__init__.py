"""
UPA Network Module - Transport for the auction server.

Provides framed-JSON TCP messaging, authenticated connections, the
single-queue command dispatcher and a small client.
"""

from upa.network.protocol import (
    Message,
    MAGIC_BYTES,
    PROTOCOL_VERSION,
    MAX_MESSAGE_SIZE,
    create_hello,
    create_error,
    create_command_ok,
    create_command_rejected,
)
from upa.network.connection import Connection, ConnectionState
from upa.network.server import AuctionServer, Command
from upa.network.client import AuctionClient

__all__ = [
    # Protocol
    "Message",
    "MAGIC_BYTES",
    "PROTOCOL_VERSION",
    "MAX_MESSAGE_SIZE",
    "create_hello",
    "create_error",
    "create_command_ok",
    "create_command_rejected",
    # Connection
    "Connection",
    "ConnectionState",
    # Server
    "AuctionServer",
    "Command",
    # Client
    "AuctionClient",
]
