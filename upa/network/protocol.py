"""
Network Protocol - Framing and command schemas for the auction transport.

Every frame carries one JSON-encoded event:

    magic (4) | version (1) | body_len (4) | body (n) | checksum (4)

The body is `{"event": str, "payload": object, "timestamp": int}` and the
checksum is the first 4 bytes of SHA-256 over header + body.
"""

import hashlib
import json
import math
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# Protocol constants
PROTOCOL_VERSION = 1
MAGIC_BYTES = b"UPA1"
HEADER_FORMAT = ">4sBI"  # magic (4) + version (1) + length (4)
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
CHECKSUM_SIZE = 4
MAX_MESSAGE_SIZE = 1024 * 1024  # 1 MiB max body


# =============================================================================
# Event Names
# =============================================================================

# Handshake
HELLO = "hello"
WELCOME = "welcome"
ERROR = "error"

# Participant commands
PLACE_BID = "place_bid"
GET_STATE = "get_state"

# Admin commands
START_AUCTION = "start_auction"
FORCE_STOP_AUCTION = "force_stop_auction"
RESET_AUCTION = "reset_auction"
SET_DURATION = "set_duration"
ADD_ASSET = "add_asset"
UPDATE_ASSET = "update_asset"
DELETE_ASSET = "delete_asset"
ADD_TEAM = "add_team"
UPDATE_TEAM = "update_team"
DELETE_TEAM = "delete_team"
GET_HISTORY = "get_history"

# Replies
STATE = "state"
HISTORY = "history"
COMMAND_OK = "command_ok"
COMMAND_REJECTED = "command_rejected"

# Internal (never accepted from clients)
TICK = "_tick"


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()[:CHECKSUM_SIZE]


@dataclass
class Message:
    """A single framed event."""
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    def to_bytes(self) -> bytes:
        """Serialize message to wire format."""
        body = json.dumps(
            {"event": self.event, "payload": self.payload, "timestamp": self.timestamp},
            separators=(",", ":"),
        ).encode("utf-8")
        if len(body) > MAX_MESSAGE_SIZE:
            raise ValueError(f"Message too large: {len(body)} bytes")

        header = struct.pack(HEADER_FORMAT, MAGIC_BYTES, PROTOCOL_VERSION, len(body))
        return header + body + _checksum(header + body)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """Deserialize message from wire format."""
        if len(data) < HEADER_SIZE + CHECKSUM_SIZE:
            raise ValueError("Message too short")

        header = data[:HEADER_SIZE]
        magic, version, body_len = parse_header(header)

        body = data[HEADER_SIZE:HEADER_SIZE + body_len]
        checksum = data[HEADER_SIZE + body_len:HEADER_SIZE + body_len + CHECKSUM_SIZE]
        if len(body) != body_len or checksum != _checksum(header + body):
            raise ValueError("Checksum mismatch")

        try:
            doc = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ValueError(f"Invalid message body: {e}") from e

        if not isinstance(doc, dict) or not isinstance(doc.get("event"), str):
            raise ValueError("Message body must be an object with an event name")
        payload = doc.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Message payload must be an object")
        timestamp = doc.get("timestamp", 0)
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError("Message timestamp must be a number")
        if not math.isfinite(timestamp):
            raise ValueError("Message timestamp must be finite")

        return cls(event=doc["event"], payload=payload, timestamp=int(timestamp))


def parse_header(header: bytes):
    """
    Validate a frame header.

    Returns:
        (magic, version, body_len)
    """
    magic, version, body_len = struct.unpack(HEADER_FORMAT, header)
    if magic != MAGIC_BYTES:
        raise ValueError(f"Invalid magic bytes: {magic}")
    if version != PROTOCOL_VERSION:
        raise ValueError(f"Unsupported protocol version: {version}")
    if body_len > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message too large: {body_len} bytes")
    return magic, version, body_len


# =============================================================================
# Message Helpers
# =============================================================================


def create_hello(
    token: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    passcode: Optional[str] = None,
) -> Message:
    """Create the handshake message a client sends first."""
    payload = {
        key: value
        for key, value in (
            ("token", token), ("username", username),
            ("password", password), ("passcode", passcode),
        )
        if value is not None
    }
    return Message(event=HELLO, payload=payload)


def create_error(reason: str) -> Message:
    return Message(event=ERROR, payload={"reason": reason})


def create_command_ok(command: str, **extra: Any) -> Message:
    return Message(event=COMMAND_OK, payload={"command": command, **extra})


def create_command_rejected(command: str, reason: str) -> Message:
    return Message(event=COMMAND_REJECTED, payload={"command": command, "reason": reason})


# =============================================================================
# Command Schemas
# =============================================================================


class CommandModel(BaseModel):
    """Base for inbound payloads: camelCase or snake_case keys, extras ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HelloPayload(CommandModel):
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    passcode: Optional[str] = None


class PlaceBidCommand(CommandModel):
    asset_id: str = Field(validation_alias=AliasChoices("asset_id", "assetId"))
    amount: int = Field(validation_alias=AliasChoices("amount", "bidAmount"))


class SetDurationCommand(CommandModel):
    seconds: int = Field(validation_alias=AliasChoices("seconds", "durationSeconds"))


class AddAssetCommand(CommandModel):
    asset_id: str = Field(validation_alias=AliasChoices("asset_id", "assetId", "id"))
    name: str
    min_bid: int = Field(validation_alias=AliasChoices("min_bid", "minBid"))
    quantity: int = 1
    category: str = ""


class UpdateAssetCommand(CommandModel):
    asset_id: str = Field(validation_alias=AliasChoices("asset_id", "assetId", "id"))
    changes: Dict[str, Any]


class DeleteAssetCommand(CommandModel):
    asset_id: str = Field(validation_alias=AliasChoices("asset_id", "assetId", "id"))


class AddTeamCommand(CommandModel):
    team_id: str = Field(validation_alias=AliasChoices("team_id", "teamId", "id"))
    name: str
    username: str
    password: str
    starting_budget: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("starting_budget", "startingBudget")
    )


class UpdateTeamCommand(CommandModel):
    team_id: str = Field(validation_alias=AliasChoices("team_id", "teamId", "id"))
    changes: Dict[str, Any]


class DeleteTeamCommand(CommandModel):
    team_id: str = Field(validation_alias=AliasChoices("team_id", "teamId", "id"))
