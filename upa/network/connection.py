"""
Connection - One client connection to the auction server.

Reading happens on the caller's task; writing goes through a bounded
outbound queue drained by a dedicated writer task, so a broadcast never
waits on a slow client.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from upa.core.auth import Identity
from upa.network.protocol import CHECKSUM_SIZE, HEADER_SIZE, Message, parse_header
from upa.utils.logger import get_logger

logger = get_logger("connection")


# Outbound frames buffered per client before it is considered stuck
MAX_OUTBOUND_QUEUE = 1000


class ConnectionState(Enum):
    """Lifecycle of a client connection."""
    HANDSHAKING = "handshaking"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        reader: Async stream reader
        writer: Async stream writer
        identity: Set once the handshake succeeds
        state: Current connection state
    """
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    identity: Optional[Identity] = None
    state: ConnectionState = ConnectionState.HANDSHAKING
    _outbound: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(MAX_OUTBOUND_QUEUE))
    _writer_task: Optional[asyncio.Task] = None

    @property
    def address(self) -> str:
        peer = self.writer.get_extra_info("peername")
        if isinstance(peer, tuple) and len(peer) >= 2:
            return f"{peer[0]}:{peer[1]}"
        return str(peer)

    @property
    def is_open(self) -> bool:
        return self.state != ConnectionState.CLOSED

    @property
    def is_admin(self) -> bool:
        return self.identity is not None and self.identity.is_admin

    def authenticate(self, identity: Identity) -> None:
        self.identity = identity
        self.state = ConnectionState.AUTHENTICATED

    def start_writer(self) -> None:
        """Start the background task that drains the outbound queue."""
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._write_loop())

    def send(self, message: Message) -> bool:
        """
        Queue a message for delivery.

        Returns:
            False if the connection is closed or its queue is full
        """
        if not self.is_open:
            return False
        try:
            self._outbound.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for {self.address}, dropping client")
            self.state = ConnectionState.CLOSED
            return False

    async def send_now(self, message: Message) -> bool:
        """Write a message directly (used before the writer task starts)."""
        if not self.is_open:
            return False
        try:
            self.writer.write(message.to_bytes())
            await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.error(f"Send error to {self.address}: {e}")
            self.state = ConnectionState.CLOSED
            return False

    async def receive(self) -> Optional[Message]:
        """
        Receive a single message.

        Returns:
            Message if received, None on error/disconnect
        """
        if not self.is_open:
            return None

        try:
            header = await self.reader.readexactly(HEADER_SIZE)
            _, _, body_len = parse_header(header)
            remainder = await self.reader.readexactly(body_len + CHECKSUM_SIZE)
            return Message.from_bytes(header + remainder)

        except asyncio.IncompleteReadError:
            logger.info(f"Client disconnected: {self.address}")
        except ValueError as e:
            logger.warning(f"Bad frame from {self.address}: {e}")
        except (ConnectionError, OSError) as e:
            logger.error(f"Receive error from {self.address}: {e}")

        self.state = ConnectionState.CLOSED
        return None

    async def close(self) -> None:
        """Flush what is queued, then close the socket."""
        if self._writer_task is not None:
            if self.is_open:
                try:
                    await asyncio.wait_for(self._outbound.join(), timeout=1.0)
                except asyncio.TimeoutError:
                    pass
            self._writer_task.cancel()
            self._writer_task = None

        self.state = ConnectionState.CLOSED
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    async def _write_loop(self) -> None:
        while True:
            message = await self._outbound.get()
            try:
                if self.state == ConnectionState.CLOSED:
                    continue
                self.writer.write(message.to_bytes())
                await self.writer.drain()
            except ValueError as e:
                logger.error(f"Cannot encode {message.event} for {self.address}: {e}")
            except (ConnectionError, OSError) as e:
                logger.error(f"Send error to {self.address}: {e}")
                self.state = ConnectionState.CLOSED
            finally:
                self._outbound.task_done()
