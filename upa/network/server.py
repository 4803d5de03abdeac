"""
Server - The auction's network front end.

Accepts TCP clients, authenticates each one once at handshake, and funnels
every inbound command (plus the clock's ticks) through a single
asyncio.Queue consumed by one dispatcher task. That dispatcher is the only
code that touches the auction state, so bids, admin commands and expiry
are totally ordered.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

import pydantic

from upa.core.auction.clock import ClockTicker
from upa.core.auction.lifecycle import AuctionLifecycle
from upa.core.auth import Authenticator, Identity, Role
from upa.core.catalog import CatalogAdmin
from upa.core.config import AuctionConfig
from upa.core.errors import AuctionError, AuthenticationError
from upa.core.events import BID_ACCEPTED, BID_REJECTED, CATALOG_UPDATED, Audience
from upa.network import protocol
from upa.network.connection import Connection
from upa.network.protocol import (
    AddAssetCommand,
    AddTeamCommand,
    DeleteAssetCommand,
    DeleteTeamCommand,
    HelloPayload,
    Message,
    PlaceBidCommand,
    SetDurationCommand,
    UpdateAssetCommand,
    UpdateTeamCommand,
    create_command_ok,
    create_command_rejected,
    create_error,
)
from upa.utils.logger import get_logger

logger = get_logger("server")


# Seconds a new client has to send its hello frame
HANDSHAKE_TIMEOUT = 10.0


@dataclass
class Command:
    """An inbound command waiting for the dispatcher."""
    message: Message
    connection: Optional[Connection] = None


Handler = Callable[[Message, Optional[Connection]], Awaitable[None]]


class AuctionServer:
    """
    Auction server: connections, broadcast fan-out and command dispatch.

    Also the lifecycle's EventSink: `broadcast()` queues a frame on every
    authenticated connection in the audience.
    """

    def __init__(
        self,
        config: AuctionConfig,
        lifecycle: AuctionLifecycle,
        authenticator: Authenticator,
        catalog: Optional[CatalogAdmin] = None,
    ):
        self.config = config
        self.lifecycle = lifecycle
        self.authenticator = authenticator
        self.catalog = catalog or CatalogAdmin(
            lifecycle.state, lifecycle.ledger, default_budget=config.starting_budget
        )
        self.connections: Set[Connection] = set()
        self.server: Optional[asyncio.AbstractServer] = None
        self.ticker = ClockTicker(lifecycle.clock, self._enqueue_tick, config.tick_interval)

        self._commands: "asyncio.Queue[Command]" = asyncio.Queue()
        self._dispatcher: Optional[asyncio.Task] = None
        self._handlers: Dict[str, Tuple[Optional[Role], Handler]] = {}

        lifecycle.events = self
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        """Map event names to (required role, handler)."""
        self._handlers[protocol.TICK] = (None, self._handle_tick)
        self._handlers[protocol.GET_STATE] = (Role.TEAM, self._handle_get_state)
        self._handlers[protocol.PLACE_BID] = (Role.TEAM, self._handle_place_bid)
        self._handlers[protocol.START_AUCTION] = (Role.ADMIN, self._handle_start)
        self._handlers[protocol.FORCE_STOP_AUCTION] = (Role.ADMIN, self._handle_force_stop)
        self._handlers[protocol.RESET_AUCTION] = (Role.ADMIN, self._handle_reset)
        self._handlers[protocol.SET_DURATION] = (Role.ADMIN, self._handle_set_duration)
        self._handlers[protocol.ADD_ASSET] = (Role.ADMIN, self._handle_add_asset)
        self._handlers[protocol.UPDATE_ASSET] = (Role.ADMIN, self._handle_update_asset)
        self._handlers[protocol.DELETE_ASSET] = (Role.ADMIN, self._handle_delete_asset)
        self._handlers[protocol.ADD_TEAM] = (Role.ADMIN, self._handle_add_team)
        self._handlers[protocol.UPDATE_TEAM] = (Role.ADMIN, self._handle_update_team)
        self._handlers[protocol.DELETE_TEAM] = (Role.ADMIN, self._handle_delete_team)
        self._handlers[protocol.GET_HISTORY] = (Role.ADMIN, self._handle_get_history)

    # =========================================================================
    # Start / Stop
    # =========================================================================

    async def start(self) -> None:
        """Start listening and dispatching."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.config.host,
            self.config.port,
        )
        self._dispatcher = asyncio.create_task(self._dispatch_loop())

        if self.lifecycle.running:
            self.ticker.start()

        logger.info(f"Auction server listening on {self.config.host}:{self.port}")

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.config.port

    async def stop(self) -> None:
        """Stop the server and close every connection."""
        self.ticker.cancel()

        if self.server:
            self.server.close()

        for conn in list(self.connections):
            await conn.close()
        self.connections.clear()

        if self.server:
            await self.server.wait_closed()
            self.server = None

        if self._dispatcher:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

        storage = self.lifecycle.storage
        if storage is not None:
            await storage.aflush()

        logger.info("Server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    # =========================================================================
    # Broadcast (EventSink)
    # =========================================================================

    def broadcast(self, audience: Audience, event: str, payload: Dict[str, Any]) -> int:
        """
        Queue an event for every connection in the audience.

        Returns:
            Number of connections the event was queued for
        """
        message = Message(event=event, payload=payload)
        count = 0
        for conn in list(self.connections):
            if conn.identity is None:
                continue
            wants = Audience.ADMINS if conn.is_admin else Audience.PARTICIPANTS
            if wants == audience and conn.send(message):
                count += 1
        return count

    # =========================================================================
    # Connections
    # =========================================================================

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handshake, then feed the client's commands into the queue."""
        conn = Connection(reader=reader, writer=writer)
        logger.info(f"Incoming connection from {conn.address}")

        try:
            identity = await self._handshake(conn)
            if identity is None:
                return

            conn.start_writer()
            self.connections.add(conn)

            while conn.is_open:
                message = await conn.receive()
                if message is None:
                    break
                if message.event.startswith("_"):
                    conn.send(create_command_rejected(message.event, "Unknown command"))
                    continue
                await self._commands.put(Command(message=message, connection=conn))
        finally:
            self.connections.discard(conn)
            await conn.close()

    async def _handshake(self, conn: Connection) -> Optional[Identity]:
        """Authenticate the first frame; the identity sticks to the connection."""
        try:
            message = await asyncio.wait_for(conn.receive(), timeout=HANDSHAKE_TIMEOUT)
        except asyncio.TimeoutError:
            await conn.send_now(create_error("Handshake timeout"))
            return None

        if message is None:
            return None
        if message.event != protocol.HELLO:
            await conn.send_now(create_error("Expected hello"))
            return None

        try:
            hello = HelloPayload.model_validate(message.payload)
            identity, token = self._authenticate(hello)
        except (pydantic.ValidationError, AuthenticationError) as e:
            reason = e.message if isinstance(e, AuthenticationError) else "Malformed hello"
            logger.warning(f"Handshake rejected for {conn.address}: {reason}")
            await conn.send_now(create_error(reason))
            return None

        conn.authenticate(identity)
        if identity.is_admin:
            state = self.lifecycle.admin_view()
        else:
            state = self.lifecycle.public_view(identity.team_id)

        await conn.send_now(Message(event=protocol.WELCOME, payload={
            "role": identity.role.value,
            "teamId": identity.team_id,
            "token": token,
            "state": state,
        }))
        logger.info(f"{conn.address} authenticated as {identity.role.value} {identity.team_id or ''}")
        return identity

    def _authenticate(self, hello: HelloPayload):
        if hello.token:
            return self.authenticator.verify(hello.token), hello.token
        if hello.passcode is not None:
            token = self.authenticator.login_admin(hello.passcode)
        elif hello.username is not None and hello.password is not None:
            token = self.authenticator.login_team(hello.username, hello.password)
        else:
            raise AuthenticationError("No credentials supplied")
        return self.authenticator.verify(token), token

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def submit(self, message: Message, connection: Optional[Connection] = None) -> None:
        """Queue a command for the dispatcher."""
        await self._commands.put(Command(message=message, connection=connection))

    async def _enqueue_tick(self) -> None:
        await self._commands.put(Command(message=Message(event=protocol.TICK)))

    async def _dispatch_loop(self) -> None:
        while True:
            command = await self._commands.get()
            try:
                await self.dispatch(command)
            finally:
                self._commands.task_done()

    async def dispatch(self, command: Command) -> None:
        """Run one command against the auction and reply to its sender."""
        message, conn = command.message, command.connection
        entry = self._handlers.get(message.event)
        if entry is None:
            self._reply(conn, create_command_rejected(message.event, "Unknown command"))
            return

        role, handler = entry
        if role is not None and not self._authorized(conn, role):
            self._reply(conn, create_command_rejected(message.event, "Not authorized"))
            return

        try:
            await handler(message, conn)
        except AuctionError as e:
            self._reply(conn, create_command_rejected(message.event, e.message))
        except pydantic.ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors()) or "Invalid payload"
            self._reply(conn, create_command_rejected(message.event, reason))
        except Exception as e:
            logger.exception(f"Handler error for {message.event}: {e}")
            self._reply(conn, create_command_rejected(message.event, "Internal error"))

    @staticmethod
    def _authorized(conn: Optional[Connection], role: Role) -> bool:
        if conn is None or conn.identity is None:
            return False
        if role == Role.ADMIN:
            return conn.is_admin
        return True

    @staticmethod
    def _reply(conn: Optional[Connection], message: Message) -> None:
        if conn is not None:
            conn.send(message)

    # =========================================================================
    # Participant Handlers
    # =========================================================================

    async def _handle_tick(self, message: Message, conn: Optional[Connection]) -> None:
        self.lifecycle.tick()
        if not self.lifecycle.running:
            self.ticker.cancel()

    async def _handle_get_state(self, message: Message, conn: Optional[Connection]) -> None:
        if conn.is_admin:
            state = self.lifecycle.admin_view()
        else:
            state = self.lifecycle.public_view(conn.identity.team_id)
        self._reply(conn, Message(event=protocol.STATE, payload=state))

    async def _handle_place_bid(self, message: Message, conn: Optional[Connection]) -> None:
        if conn.identity.role != Role.TEAM:
            self._reply(conn, Message(event=BID_REJECTED, payload={"reason": "Only teams can bid."}))
            return

        try:
            cmd = PlaceBidCommand.model_validate(message.payload)
        except pydantic.ValidationError:
            self._reply(conn, Message(event=BID_REJECTED, payload={"reason": "Invalid bid."}))
            return

        accepted, reason = self.lifecycle.submit_bid(conn.identity.team_id, cmd.asset_id, cmd.amount)
        if accepted:
            self._reply(conn, Message(event=BID_ACCEPTED, payload={
                "assetId": cmd.asset_id,
                "amount": cmd.amount,
            }))
        else:
            self._reply(conn, Message(event=BID_REJECTED, payload={
                "assetId": cmd.asset_id,
                "reason": reason,
            }))

    # =========================================================================
    # Admin Handlers
    # =========================================================================

    async def _handle_start(self, message: Message, conn: Optional[Connection]) -> None:
        end_time = self.lifecycle.start()
        self.ticker.start()
        self._reply(conn, create_command_ok(message.event, endTime=end_time))

    async def _handle_force_stop(self, message: Message, conn: Optional[Connection]) -> None:
        self.lifecycle.force_stop()
        self.ticker.cancel()
        self._reply(conn, create_command_ok(
            message.event, message="Auction forcefully stopped and results resolved."
        ))

    async def _handle_reset(self, message: Message, conn: Optional[Connection]) -> None:
        entry = self.lifecycle.reset()
        self._reply(conn, create_command_ok(
            message.event, gameId=entry.game_id if entry else None
        ))

    async def _handle_set_duration(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = SetDurationCommand.model_validate(message.payload)
        seconds = self.lifecycle.set_duration(cmd.seconds)
        self._reply(conn, create_command_ok(message.event, durationSeconds=seconds))

    async def _handle_add_asset(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = AddAssetCommand.model_validate(message.payload)
        asset = self.catalog.add_asset(cmd.asset_id, cmd.name, cmd.min_bid, cmd.quantity, cmd.category)
        self._catalog_changed(message.event, conn, assetId=asset.asset_id)

    async def _handle_update_asset(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = UpdateAssetCommand.model_validate(message.payload)
        self.catalog.update_asset(cmd.asset_id, cmd.changes)
        self._catalog_changed(message.event, conn, assetId=cmd.asset_id)

    async def _handle_delete_asset(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = DeleteAssetCommand.model_validate(message.payload)
        self.catalog.delete_asset(cmd.asset_id)
        self._catalog_changed(message.event, conn, assetId=cmd.asset_id)

    async def _handle_add_team(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = AddTeamCommand.model_validate(message.payload)
        team = self.catalog.add_team(cmd.team_id, cmd.name, cmd.username, cmd.password, cmd.starting_budget)
        self._catalog_changed(message.event, conn, teamId=team.team_id)

    async def _handle_update_team(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = UpdateTeamCommand.model_validate(message.payload)
        self.catalog.update_team(cmd.team_id, cmd.changes)
        self._catalog_changed(message.event, conn, teamId=cmd.team_id)

    async def _handle_delete_team(self, message: Message, conn: Optional[Connection]) -> None:
        cmd = DeleteTeamCommand.model_validate(message.payload)
        self.catalog.delete_team(cmd.team_id)
        for other in list(self.connections):
            if other.identity and other.identity.team_id == cmd.team_id:
                await other.close()
                self.connections.discard(other)
        self._catalog_changed(message.event, conn, teamId=cmd.team_id)

    async def _handle_get_history(self, message: Message, conn: Optional[Connection]) -> None:
        entries = [entry.to_dict() for entry in self.lifecycle.history.entries()]
        self._reply(conn, Message(event=protocol.HISTORY, payload={"games": entries}))

    def _catalog_changed(self, command: str, conn: Optional[Connection], **extra: Any) -> None:
        self.broadcast(Audience.PARTICIPANTS, CATALOG_UPDATED, {
            "assets": self.lifecycle.asset_results(),
            "teams": self.lifecycle.team_views(),
        })
        admin = self.lifecycle.admin_view()
        self.broadcast(Audience.ADMINS, CATALOG_UPDATED, {
            "assets": admin["assets"],
            "teams": admin["teams"],
        })
        if self.lifecycle.storage is not None:
            self.lifecycle.storage.save(self.lifecycle.state)
        self._reply(conn, create_command_ok(command, **extra))
