"""
Client - Minimal async client for the auction server.

Used by the CLI and integration tests.
"""

import asyncio
from typing import Any, Dict, Optional

from upa.network.protocol import (
    CHECKSUM_SIZE,
    ERROR,
    HEADER_SIZE,
    WELCOME,
    Message,
    create_hello,
    parse_header,
)
from upa.utils.logger import get_logger

logger = get_logger("client")


class AuctionClient:
    """
    A single connection to an AuctionServer.

    Attributes:
        role: Role granted at handshake
        team_id: Team id for team connections
        token: Identity token, reusable for reconnects
        welcome_state: State snapshot sent with the welcome frame
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.role: Optional[str] = None
        self.team_id: Optional[str] = None
        self.token: Optional[str] = None
        self.welcome_state: Dict[str, Any] = {}

    async def connect(self, timeout: float = 10.0, **credentials: Any) -> Message:
        """
        Open the connection and perform the handshake.

        Args:
            timeout: Connect/handshake timeout
            **credentials: token=..., username=/password=..., or passcode=...

        Returns:
            The welcome message

        Raises:
            ConnectionError: handshake refused
        """
        self.reader, self.writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), timeout=timeout
        )
        await self.send_message(create_hello(**credentials))

        reply = await asyncio.wait_for(self.receive(), timeout=timeout)
        if reply is None or reply.event == ERROR:
            reason = reply.payload.get("reason") if reply else "connection closed"
            await self.close()
            raise ConnectionError(f"Handshake refused: {reason}")
        if reply.event != WELCOME:
            await self.close()
            raise ConnectionError(f"Unexpected handshake reply: {reply.event}")

        self.role = reply.payload.get("role")
        self.team_id = reply.payload.get("teamId")
        self.token = reply.payload.get("token")
        self.welcome_state = reply.payload.get("state", {})
        return reply

    async def send(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        await self.send_message(Message(event=event, payload=payload or {}))

    async def send_message(self, message: Message) -> None:
        if self.writer is None:
            raise ConnectionError("Not connected")
        self.writer.write(message.to_bytes())
        await self.writer.drain()

    async def receive(self) -> Optional[Message]:
        """Read one message, None once the server closes the connection."""
        if self.reader is None:
            return None
        try:
            header = await self.reader.readexactly(HEADER_SIZE)
            _, _, body_len = parse_header(header)
            remainder = await self.reader.readexactly(body_len + CHECKSUM_SIZE)
        except asyncio.IncompleteReadError:
            return None
        return Message.from_bytes(header + remainder)

    async def wait_for(self, event: str, timeout: float = 5.0) -> Message:
        """
        Skip messages until one named `event` arrives.

        Raises:
            asyncio.TimeoutError: not seen in time
            ConnectionError: connection closed first
        """
        async def _wait() -> Message:
            while True:
                message = await self.receive()
                if message is None:
                    raise ConnectionError(f"Connection closed while waiting for {event}")
                if message.event == event:
                    return message

        return await asyncio.wait_for(_wait(), timeout=timeout)

    async def close(self) -> None:
        if self.writer is not None:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass
        self.reader = None
        self.writer = None
