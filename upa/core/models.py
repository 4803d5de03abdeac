"""
Auction data model.

All mutable auction data lives in one `AuctionState` container that is
passed by reference to the ledger, clearing engine, lifecycle, catalog admin
and storage. Each type knows how to render itself to and from plain dicts so
the state can be saved as JSON and broadcast to clients.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================


class AuctionPhase(str, Enum):
    """Lifecycle phase of the (single) auction run."""
    IDLE = "idle"           # Initial, and after reset
    RUNNING = "running"     # Accepting bids, clock armed
    RESOLVED = "resolved"   # Winners computed, waiting for reset


class AssetOutcome(str, Enum):
    """Resolution outcome of an asset."""
    UNRESOLVED = "unresolved"
    MULTIPLE_WINNERS = "multiple_winners"
    NO_WINNER = "no_winner"
    VOIDED = "voided"


# =============================================================================
# Catalog
# =============================================================================


@dataclass
class PlacedBid:
    """
    A team's current bid on one asset.

    `sequence` is assigned by the ledger on every (re)submission and is the
    tie-break between equal amounts: lower sequence ranks first.
    """
    amount: int
    sequence: int

    def to_dict(self) -> Dict[str, int]:
        return {"amount": self.amount, "sequence": self.sequence}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlacedBid":
        return cls(amount=int(data["amount"]), sequence=int(data["sequence"]))


@dataclass
class Asset:
    """
    An auctioned asset offering `quantity` identical units.

    Attributes:
        asset_id: Catalog identifier
        name: Display name
        category: Free-form grouping label
        min_bid: Minimum per-unit bid
        quantity: Units available (>= 1)
        current_bids: team_id -> latest PlacedBid
        outcome: Resolution outcome
        clearing_price: Uniform per-unit price (0 until resolved)
        winners: Team ids holding a unit, best bid first
        voided_team_ids: Teams whose slot was annulled by the budget rule
    """
    asset_id: str
    name: str
    category: str = ""
    min_bid: int = 0
    quantity: int = 1
    current_bids: Dict[str, PlacedBid] = field(default_factory=dict)
    outcome: AssetOutcome = AssetOutcome.UNRESOLVED
    clearing_price: int = 0
    winners: List[str] = field(default_factory=list)
    voided_team_ids: List[str] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.outcome != AssetOutcome.UNRESOLVED

    def clear_results(self) -> None:
        """Drop bids and resolution fields."""
        self.current_bids = {}
        self.outcome = AssetOutcome.UNRESOLVED
        self.clearing_price = 0
        self.winners = []
        self.voided_team_ids = []

    def bid_amounts(self) -> Dict[str, int]:
        return {team_id: bid.amount for team_id, bid in self.current_bids.items()}

    def to_dict(self, include_bids: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.asset_id,
            "name": self.name,
            "category": self.category,
            "min_bid": self.min_bid,
            "quantity": self.quantity,
            "outcome": self.outcome.value,
            "clearing_price": self.clearing_price,
            "winners": list(self.winners),
            "voided_team_ids": list(self.voided_team_ids),
        }
        if include_bids:
            data["current_bids"] = {
                team_id: bid.to_dict() for team_id, bid in self.current_bids.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            asset_id=data["id"],
            name=data["name"],
            category=data.get("category", ""),
            min_bid=int(data.get("min_bid", 0)),
            quantity=int(data.get("quantity", 1)),
            current_bids={
                team_id: PlacedBid.from_dict(bid)
                for team_id, bid in data.get("current_bids", {}).items()
            },
            outcome=AssetOutcome(data.get("outcome", AssetOutcome.UNRESOLVED.value)),
            clearing_price=int(data.get("clearing_price", 0)),
            winners=list(data.get("winners", [])),
            voided_team_ids=list(data.get("voided_team_ids", [])),
        )


# =============================================================================
# Teams
# =============================================================================


@dataclass
class WonAsset:
    """One unit of an asset awarded to a team."""
    name: str
    cost: int
    quantity: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "cost": self.cost, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WonAsset":
        return cls(
            name=data["name"],
            cost=int(data["cost"]),
            quantity=int(data.get("quantity", 1)),
        )


@dataclass
class Team:
    """
    A bidding team.

    `budget` is only changed by resolution (deduction) and reset
    (restored to `starting_budget`).
    """
    team_id: str
    name: str
    username: str = ""
    password_hash: str = ""
    budget: int = 0
    starting_budget: int = 0
    assets_won: List[WonAsset] = field(default_factory=list)

    def restore_budget(self) -> None:
        self.budget = self.starting_budget
        self.assets_won = []

    def to_dict(self, include_credentials: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.team_id,
            "name": self.name,
            "budget": self.budget,
            "starting_budget": self.starting_budget,
            "assets_won": [won.to_dict() for won in self.assets_won],
        }
        if include_credentials:
            data["username"] = self.username
            data["password_hash"] = self.password_hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Team":
        return cls(
            team_id=data["id"],
            name=data["name"],
            username=data.get("username", ""),
            password_hash=data.get("password_hash", ""),
            budget=int(data.get("budget", 0)),
            starting_budget=int(data.get("starting_budget", data.get("budget", 0))),
            assets_won=[WonAsset.from_dict(w) for w in data.get("assets_won", [])],
        )


# =============================================================================
# Run & History
# =============================================================================


@dataclass
class AuctionRun:
    """Process-wide auction run: phase, expiry and configured duration."""
    phase: AuctionPhase = AuctionPhase.IDLE
    end_time: Optional[float] = None
    duration_seconds: int = 30 * 60

    @property
    def active(self) -> bool:
        return self.phase == AuctionPhase.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "end_time": self.end_time,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuctionRun":
        return cls(
            phase=AuctionPhase(data.get("phase", AuctionPhase.IDLE.value)),
            end_time=data.get("end_time"),
            duration_seconds=int(data.get("duration_seconds", 30 * 60)),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Snapshot of a resolved game, taken right before reset."""
    game_id: int
    timestamp: float
    duration_seconds: int
    assets: List[Dict[str, Any]]
    teams: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "timestamp": self.timestamp,
            "duration_seconds": self.duration_seconds,
            "assets": self.assets,
            "teams": self.teams,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            game_id=int(data["game_id"]),
            timestamp=float(data["timestamp"]),
            duration_seconds=int(data["duration_seconds"]),
            assets=list(data.get("assets", [])),
            teams=list(data.get("teams", [])),
        )


# =============================================================================
# State Container
# =============================================================================


@dataclass
class AuctionState:
    """
    Everything the auction owns.

    Attributes:
        assets: asset_id -> Asset, in catalog order
        teams: team_id -> Team, in registration order
        run: The singleton auction run
        history: Append-only resolved-game snapshots
        bid_sequence: Last sequence number handed out by the ledger
    """
    assets: Dict[str, Asset] = field(default_factory=dict)
    teams: Dict[str, Team] = field(default_factory=dict)
    run: AuctionRun = field(default_factory=AuctionRun)
    history: List[HistoryEntry] = field(default_factory=list)
    bid_sequence: int = 0

    def next_bid_sequence(self) -> int:
        self.bid_sequence += 1
        return self.bid_sequence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assets": [asset.to_dict() for asset in self.assets.values()],
            "teams": [team.to_dict(include_credentials=True) for team in self.teams.values()],
            "run": self.run.to_dict(),
            "history": [entry.to_dict() for entry in self.history],
            "bid_sequence": self.bid_sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuctionState":
        assets = [Asset.from_dict(a) for a in data.get("assets", [])]
        teams = [Team.from_dict(t) for t in data.get("teams", [])]
        return cls(
            assets={asset.asset_id: asset for asset in assets},
            teams={team.team_id: team for team in teams},
            run=AuctionRun.from_dict(data.get("run", {})),
            history=[HistoryEntry.from_dict(h) for h in data.get("history", [])],
            bid_sequence=int(data.get("bid_sequence", 0)),
        )
