"""
Catalog - Asset and team administration.

Admin CRUD over the shared AuctionState. Fields owned by the bid ledger and
the clearing engine (bids, outcomes, budgets, won assets) are never
writable from here. Structural changes (adding/removing entries, changing
minimum bids or quantities) are refused while an auction is running.
"""

from typing import Any, Dict, List, Optional

from upa.core.auction.ledger import BidLedger
from upa.core.auth import hash_password
from upa.core.config import AuctionConfig
from upa.core.errors import StateConflictError, ValidationError
from upa.core.models import Asset, AuctionRun, AuctionState, Team
from upa.utils.logger import get_logger
from upa.utils.validation import (
    validate_amount,
    validate_fields,
    validate_identifier,
    validate_quantity,
    validate_string,
)

logger = get_logger("catalog")


# =============================================================================
# Field Rules
# =============================================================================

ASSET_EDITABLE = ("name", "category", "min_bid", "quantity")
ASSET_PROTECTED = ("id", "asset_id", "current_bids", "outcome", "clearing_price",
                   "winners", "voided_team_ids")
ASSET_STRUCTURAL = ("min_bid", "quantity")

TEAM_EDITABLE = ("name", "username", "password")
TEAM_PROTECTED = ("id", "team_id", "budget", "starting_budget", "assets_won", "password_hash")


# =============================================================================
# Seed Data
# =============================================================================

SEED_ASSETS = [
    ("A1", "Enterprise Cloud Server", "Tech", 100_000),
    ("A2", "Social Media Influencer Pack", "Marketing", 50_000),
    ("A3", "UI/UX Design Consultation", "Operations", 30_000),
    ("A4", "Patent Lawyer Consultation", "Legal", 75_000),
]

SEED_TEAMS = [
    ("T1", "Team Phoenix", "t1"),
    ("T2", "Team Apex", "t2"),
    ("T3", "Team Zenith", "t3"),
]


def default_state(config: Optional[AuctionConfig] = None) -> AuctionState:
    """
    Build the initial catalog used when no saved state exists.

    Seeded team passwords equal their usernames.
    """
    config = config or AuctionConfig()
    state = AuctionState(run=AuctionRun(duration_seconds=config.duration_seconds))
    for asset_id, name, category, min_bid in SEED_ASSETS:
        state.assets[asset_id] = Asset(
            asset_id=asset_id, name=name, category=category, min_bid=min_bid, quantity=1
        )
    for team_id, name, username in SEED_TEAMS:
        state.teams[team_id] = Team(
            team_id=team_id,
            name=name,
            username=username,
            password_hash=hash_password(username),
            budget=config.starting_budget,
            starting_budget=config.starting_budget,
        )
    return state


def _check(result) -> None:
    valid, err = result
    if not valid:
        raise ValidationError(err)


# =============================================================================
# Catalog Admin
# =============================================================================


class CatalogAdmin:
    """Admin-side create/update/delete for assets and teams."""

    def __init__(self, state: AuctionState, ledger: Optional[BidLedger] = None,
                 default_budget: int = 500_000):
        self.state = state
        self.ledger = ledger or BidLedger(state)
        self.default_budget = default_budget

    def _require_not_running(self, action: str) -> None:
        if self.state.run.active:
            raise StateConflictError(f"Cannot {action} while the auction is running.")

    # =========================================================================
    # Assets
    # =========================================================================

    def add_asset(
        self,
        asset_id: str,
        name: str,
        min_bid: int,
        quantity: int = 1,
        category: str = "",
    ) -> Asset:
        self._require_not_running("add assets")
        _check(validate_identifier(asset_id, "asset_id"))
        _check(validate_string(name, "name"))
        _check(validate_string(category, "category", allow_empty=True))
        _check(validate_amount(min_bid, "min_bid"))
        _check(validate_quantity(quantity))
        if asset_id in self.state.assets:
            raise ValidationError(f"Asset already exists: {asset_id}")

        asset = Asset(asset_id=asset_id, name=name, category=category,
                      min_bid=min_bid, quantity=quantity)
        self.state.assets[asset_id] = asset
        logger.info(f"Asset added: {asset_id} ({name}), min_bid={min_bid}, quantity={quantity}")
        return asset

    def update_asset(self, asset_id: str, changes: Dict[str, Any]) -> Asset:
        """
        Apply changes to an asset.

        Raises:
            ValidationError: unknown asset, protected or invalid field
            StateConflictError: min_bid/quantity change while running
        """
        asset = self.get_asset(asset_id)
        _check(validate_fields(changes, ASSET_EDITABLE, ASSET_PROTECTED))
        if any(key in ASSET_STRUCTURAL for key in changes):
            self._require_not_running("change minimum bid or quantity")

        if "name" in changes:
            _check(validate_string(changes["name"], "name"))
        if "category" in changes:
            _check(validate_string(changes["category"], "category", allow_empty=True))
        if "min_bid" in changes:
            _check(validate_amount(changes["min_bid"], "min_bid"))
        if "quantity" in changes:
            _check(validate_quantity(changes["quantity"]))

        for key, value in changes.items():
            setattr(asset, key, value)
        logger.info(f"Asset updated: {asset_id} {sorted(changes)}")
        return asset

    def delete_asset(self, asset_id: str) -> Asset:
        self._require_not_running("delete assets")
        asset = self.get_asset(asset_id)
        del self.state.assets[asset_id]
        logger.info(f"Asset deleted: {asset_id}")
        return asset

    def get_asset(self, asset_id: str) -> Asset:
        asset = self.state.assets.get(asset_id)
        if asset is None:
            raise ValidationError(f"Unknown asset: {asset_id}")
        return asset

    def list_assets(self) -> List[Asset]:
        return list(self.state.assets.values())

    # =========================================================================
    # Teams
    # =========================================================================

    def add_team(
        self,
        team_id: str,
        name: str,
        username: str,
        password: str,
        starting_budget: Optional[int] = None,
    ) -> Team:
        self._require_not_running("add teams")
        budget = self.default_budget if starting_budget is None else starting_budget
        _check(validate_identifier(team_id, "team_id"))
        _check(validate_string(name, "name"))
        _check(validate_identifier(username, "username"))
        _check(validate_string(password, "password"))
        _check(validate_amount(budget, "starting_budget"))
        if team_id in self.state.teams:
            raise ValidationError(f"Team already exists: {team_id}")
        self._require_unique_username(username)

        team = Team(
            team_id=team_id,
            name=name,
            username=username,
            password_hash=hash_password(password),
            budget=budget,
            starting_budget=budget,
        )
        self.state.teams[team_id] = team
        logger.info(f"Team added: {team_id} ({name}), budget={budget}")
        return team

    def update_team(self, team_id: str, changes: Dict[str, Any]) -> Team:
        """
        Apply identity/credential changes to a team.

        Raises:
            ValidationError: unknown team, protected or invalid field
        """
        team = self.get_team(team_id)
        _check(validate_fields(changes, TEAM_EDITABLE, TEAM_PROTECTED))

        if "name" in changes:
            _check(validate_string(changes["name"], "name"))
        if "username" in changes:
            _check(validate_identifier(changes["username"], "username"))
            self._require_unique_username(changes["username"], exclude=team_id)
        if "password" in changes:
            _check(validate_string(changes["password"], "password"))

        if "name" in changes:
            team.name = changes["name"]
        if "username" in changes:
            team.username = changes["username"]
        if "password" in changes:
            team.password_hash = hash_password(changes["password"])
        logger.info(f"Team updated: {team_id} {sorted(changes)}")
        return team

    def delete_team(self, team_id: str) -> Team:
        self._require_not_running("delete teams")
        team = self.get_team(team_id)
        self.ledger.drop_team(team_id)
        del self.state.teams[team_id]
        logger.info(f"Team deleted: {team_id}")
        return team

    def get_team(self, team_id: str) -> Team:
        team = self.state.teams.get(team_id)
        if team is None:
            raise ValidationError(f"Unknown team: {team_id}")
        return team

    def list_teams(self) -> List[Team]:
        return list(self.state.teams.values())

    def _require_unique_username(self, username: str, exclude: Optional[str] = None) -> None:
        for other in self.state.teams.values():
            if other.username == username and other.team_id != exclude:
                raise ValidationError(f"Username already taken: {username}")
