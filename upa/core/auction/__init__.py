"""
UPA Auction Module.

This module provides the auction engine:
- Clock and ticker
- Bid ledger (last value wins)
- Uniform-price multi-unit clearing with budget discipline
- Lifecycle state machine
- Game history
"""

from upa.core.auction.clock import (
    AuctionClock,
    ClockTicker,
    DEFAULT_TICK_INTERVAL,
)

from upa.core.auction.ledger import BidLedger

from upa.core.auction.clearing import (
    AssetClearing,
    RankedBid,
    ResolutionReport,
    clear_asset,
    rank_bids,
    resolve_auction,
    team_commitments,
    valid_bids,
)

from upa.core.auction.history import HistoryRecorder

from upa.core.auction.lifecycle import AuctionLifecycle

__all__ = [
    # Clock
    "AuctionClock",
    "ClockTicker",
    "DEFAULT_TICK_INTERVAL",
    # Ledger
    "BidLedger",
    # Clearing
    "AssetClearing",
    "RankedBid",
    "ResolutionReport",
    "clear_asset",
    "rank_bids",
    "resolve_auction",
    "team_commitments",
    "valid_bids",
    # History
    "HistoryRecorder",
    # Lifecycle
    "AuctionLifecycle",
]
