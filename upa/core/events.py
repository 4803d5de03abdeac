"""
Events - Outbound notifications emitted by the auction.

The core only needs "broadcast event E with payload P to audience A";
the transport decides how that reaches clients.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Protocol, runtime_checkable


class Audience(str, Enum):
    """Who receives a broadcast."""
    PARTICIPANTS = "participants"
    ADMINS = "admins"


# Event names
AUCTION_START = "auction_start"
TIMER_TICK = "timer_tick"
AUCTION_RESOLVED = "auction_resolved"
TEAMS_UPDATED = "teams_updated"
BID_ACCEPTED = "bid_accepted"
BID_REJECTED = "bid_rejected"
BIDS_UPDATED = "bids_updated"
AUCTION_RESET = "auction_reset"
DURATION_UPDATED = "duration_updated"
CATALOG_UPDATED = "catalog_updated"


@runtime_checkable
class EventSink(Protocol):
    """Anything that can fan an event out to an audience."""

    def broadcast(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        ...


class NullSink:
    """Discards every event."""

    def broadcast(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        pass


@dataclass
class RecordedEvent:
    audience: Audience
    event: str
    payload: Dict[str, Any]


class EventLog:
    """In-memory sink that keeps every broadcast, in order."""

    def __init__(self):
        self.events: List[RecordedEvent] = []

    def broadcast(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        self.events.append(RecordedEvent(audience, event, payload))

    def named(self, event: str) -> List[RecordedEvent]:
        return [e for e in self.events if e.event == event]

    def clear(self) -> None:
        self.events.clear()
