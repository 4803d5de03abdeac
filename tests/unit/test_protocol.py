"""
Unit tests for the UPA wire protocol.

Tests cover:
1. Frame serialization/deserialization
2. Checksum, header and body validation
3. Command schemas
"""

import asyncio
import hashlib
import json
import struct

import pydantic
import pytest

from upa.network.connection import Connection
from upa.network.protocol import (
    CHECKSUM_SIZE,
    COMMAND_OK,
    COMMAND_REJECTED,
    HEADER_FORMAT,
    HEADER_SIZE,
    HELLO,
    MAGIC_BYTES,
    MAX_MESSAGE_SIZE,
    PROTOCOL_VERSION,
    AddTeamCommand,
    HelloPayload,
    Message,
    PlaceBidCommand,
    SetDurationCommand,
    UpdateAssetCommand,
    create_command_ok,
    create_command_rejected,
    create_error,
    create_hello,
    parse_header,
)


def frame_body(body: bytes) -> bytes:
    """Wrap a raw body in a valid header and checksum."""
    header = struct.pack(HEADER_FORMAT, MAGIC_BYTES, PROTOCOL_VERSION, len(body))
    return header + body + hashlib.sha256(header + body).digest()[:CHECKSUM_SIZE]


def frame(doc) -> bytes:
    return frame_body(json.dumps(doc).encode())


class StubWriter:
    def get_extra_info(self, name):
        return ("127.0.0.1", 40000)


# =============================================================================
# Framing Tests
# =============================================================================


class TestMessage:
    """Tests for Message serialization and deserialization."""

    def test_frame_layout(self):
        data = Message(event="state", payload={"a": 1}, timestamp=100).to_bytes()

        magic, version, body_len = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
        assert magic == MAGIC_BYTES
        assert version == PROTOCOL_VERSION
        assert len(data) == HEADER_SIZE + body_len + CHECKSUM_SIZE

    def test_decode(self):
        original = Message(event="place_bid", payload={"assetId": "A1", "bidAmount": 150}, timestamp=42)
        decoded = Message.from_bytes(original.to_bytes())

        assert decoded == original

    def test_timestamp_defaults_to_now(self):
        assert Message(event="x").timestamp > 0

    def test_corrupted_body_rejected(self):
        data = bytearray(Message(event="state", payload={"a": 1}).to_bytes())
        data[HEADER_SIZE + 2] ^= 0xFF
        with pytest.raises(ValueError, match="Checksum"):
            Message.from_bytes(bytes(data))

    def test_truncated_rejected(self):
        data = Message(event="state").to_bytes()
        with pytest.raises(ValueError):
            Message.from_bytes(data[:-1])
        with pytest.raises(ValueError, match="too short"):
            Message.from_bytes(data[:4])

    def test_bad_magic_rejected(self):
        header = struct.pack(HEADER_FORMAT, b"NOPE", PROTOCOL_VERSION, 0)
        with pytest.raises(ValueError, match="magic"):
            parse_header(header)

    def test_bad_version_rejected(self):
        header = struct.pack(HEADER_FORMAT, MAGIC_BYTES, PROTOCOL_VERSION + 1, 0)
        with pytest.raises(ValueError, match="version"):
            parse_header(header)

    def test_oversized_header_rejected(self):
        header = struct.pack(HEADER_FORMAT, MAGIC_BYTES, PROTOCOL_VERSION, MAX_MESSAGE_SIZE + 1)
        with pytest.raises(ValueError, match="too large"):
            parse_header(header)

    def test_oversized_message_not_encoded(self):
        with pytest.raises(ValueError, match="too large"):
            Message(event="x", payload={"blob": "a" * MAX_MESSAGE_SIZE}).to_bytes()

    def test_non_object_payload_rejected(self):
        with pytest.raises(ValueError, match="payload"):
            Message.from_bytes(frame({"event": "x", "payload": [1, 2]}))

    @pytest.mark.parametrize("timestamp", [None, [1], {"t": 1}, "123", True])
    def test_non_numeric_timestamp_rejected(self, timestamp):
        with pytest.raises(ValueError, match="timestamp"):
            Message.from_bytes(frame({"event": HELLO, "payload": {}, "timestamp": timestamp}))

    def test_infinite_timestamp_rejected(self):
        body = b'{"event":"hello","payload":{},"timestamp":1e999}'
        with pytest.raises(ValueError, match="timestamp"):
            Message.from_bytes(frame_body(body))

    def test_missing_timestamp_defaults_to_now(self):
        decoded = Message.from_bytes(frame({"event": HELLO}))
        assert decoded.timestamp > 0


# =============================================================================
# Connection Tests
# =============================================================================


class TestConnectionReceive:
    """Tests for reading frames off a stream."""

    def test_bad_timestamp_frame_returns_none(self):
        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(frame({"event": HELLO, "payload": {}, "timestamp": None}))
            reader.feed_eof()
            conn = Connection(reader=reader, writer=StubWriter())
            return await conn.receive()

        assert asyncio.run(run()) is None

    def test_good_frame_received(self):
        async def run():
            reader = asyncio.StreamReader()
            reader.feed_data(Message(event=HELLO, payload={"token": "t"}, timestamp=7).to_bytes())
            conn = Connection(reader=reader, writer=StubWriter())
            return await conn.receive()

        assert asyncio.run(run()) == Message(event=HELLO, payload={"token": "t"}, timestamp=7)


# =============================================================================
# Helper Tests
# =============================================================================


class TestHelpers:
    """Tests for message constructors."""

    def test_hello_omits_missing_fields(self):
        msg = create_hello(username="t1", password="t1")
        assert msg.event == HELLO
        assert msg.payload == {"username": "t1", "password": "t1"}

    def test_replies(self):
        assert create_error("nope").payload == {"reason": "nope"}

        ok = create_command_ok("reset_auction", gameId=3)
        assert ok.event == COMMAND_OK
        assert ok.payload == {"command": "reset_auction", "gameId": 3}

        rejected = create_command_rejected("start_auction", "Auction is already running.")
        assert rejected.event == COMMAND_REJECTED
        assert rejected.payload["reason"] == "Auction is already running."


# =============================================================================
# Schema Tests
# =============================================================================


class TestCommandSchemas:
    """Tests for inbound payload validation."""

    def test_place_bid_camel_case(self):
        cmd = PlaceBidCommand.model_validate({"assetId": "A1", "bidAmount": 150})
        assert (cmd.asset_id, cmd.amount) == ("A1", 150)

    def test_place_bid_snake_case(self):
        cmd = PlaceBidCommand.model_validate({"asset_id": "A1", "amount": 150})
        assert cmd.amount == 150

    def test_place_bid_missing_amount(self):
        with pytest.raises(pydantic.ValidationError):
            PlaceBidCommand.model_validate({"assetId": "A1"})

    def test_place_bid_non_numeric(self):
        with pytest.raises(pydantic.ValidationError):
            PlaceBidCommand.model_validate({"assetId": "A1", "bidAmount": "lots"})

    def test_set_duration_alias(self):
        assert SetDurationCommand.model_validate({"durationSeconds": 300}).seconds == 300

    def test_add_team_optional_budget(self):
        cmd = AddTeamCommand.model_validate(
            {"id": "T9", "name": "Nine", "username": "nine", "password": "pw"}
        )
        assert cmd.team_id == "T9"
        assert cmd.starting_budget is None

    def test_update_asset_changes_required(self):
        with pytest.raises(pydantic.ValidationError):
            UpdateAssetCommand.model_validate({"assetId": "A1"})

    def test_extra_fields_ignored(self):
        hello = HelloPayload.model_validate({"token": "abc", "noise": True})
        assert hello.token == "abc"
