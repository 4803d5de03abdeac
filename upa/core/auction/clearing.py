"""
Clearing - Uniform-price multi-unit resolution with budget discipline.

Resolution runs in two strictly separate passes:

1. Per-asset clearing. Every asset is cleared against the same
   pre-resolution budget snapshot:
   - valid bids: min_bid <= amount <= snapshot budget of the bidder
   - rank by amount, highest first; equal amounts rank by ledger sequence
     (the earlier latest-submission wins)
   - the top `quantity` bidders form the winning pool, one unit each
   - clearing price = lowest amount in the pool, paid by every winner

2. Budget pass. For each team holding any slot, its total commitment is the
   sum of the clearing prices it owes. If that fits its budget the total is
   deducted once and one won-asset record per slot is written. Otherwise
   every slot of that team is voided and nothing is deducted. Voiding only
   removes that team; other winners on the same asset keep their unit and
   price. An asset whose pool empties this way is VOIDED.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from upa.core.models import Asset, AssetOutcome, AuctionState, WonAsset
from upa.utils.logger import get_logger

logger = get_logger("clearing")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class RankedBid:
    """A valid bid, ready for ranking."""
    team_id: str
    amount: int
    sequence: int

    def rank_key(self) -> Tuple[int, int, str]:
        """Sort key: amount desc, then sequence asc, then team id."""
        return (-self.amount, self.sequence, self.team_id)


@dataclass
class AssetClearing:
    """Result of clearing a single asset."""
    asset_id: str
    winners: List[str] = field(default_factory=list)
    clearing_price: int = 0
    outcome: AssetOutcome = AssetOutcome.NO_WINNER
    voided_team_ids: List[str] = field(default_factory=list)


@dataclass
class ResolutionReport:
    """
    Outcome of a full resolution.

    Attributes:
        clearings: asset_id -> AssetClearing (after the budget pass)
        charges: team_id -> amount deducted
        voided: team_id -> rejected total commitment
    """
    clearings: Dict[str, AssetClearing] = field(default_factory=dict)
    charges: Dict[str, int] = field(default_factory=dict)
    voided: Dict[str, int] = field(default_factory=dict)

    @property
    def winner_count(self) -> int:
        return sum(len(c.winners) for c in self.clearings.values())


# =============================================================================
# Per-Asset Clearing
# =============================================================================


def valid_bids(asset: Asset, budgets: Dict[str, int]) -> List[RankedBid]:
    """
    Filter an asset's bids against its minimum and the budget snapshot.

    Bids from teams missing from `budgets` (deleted mid-run) are skipped.
    """
    result = []
    for team_id, bid in asset.current_bids.items():
        budget = budgets.get(team_id)
        if budget is None:
            logger.warning(f"Skipping bid on {asset.asset_id} from unknown team {team_id}")
            continue
        if asset.min_bid <= bid.amount <= budget:
            result.append(RankedBid(team_id=team_id, amount=bid.amount, sequence=bid.sequence))
    return result


def rank_bids(bids: List[RankedBid]) -> List[RankedBid]:
    """Order bids best first (deterministic for equal amounts)."""
    return sorted(bids, key=RankedBid.rank_key)


def clear_asset(asset: Asset, budgets: Dict[str, int]) -> AssetClearing:
    """
    Compute the winning pool and uniform price for one asset.

    Args:
        asset: Asset with its current bids
        budgets: Pre-resolution team budgets

    Returns:
        AssetClearing (not yet applied to the asset)
    """
    ranked = rank_bids(valid_bids(asset, budgets))
    pool = ranked[:asset.quantity]

    if not pool:
        return AssetClearing(asset_id=asset.asset_id)

    return AssetClearing(
        asset_id=asset.asset_id,
        winners=[b.team_id for b in pool],
        clearing_price=min(b.amount for b in pool),
        outcome=AssetOutcome.MULTIPLE_WINNERS,
    )


# =============================================================================
# Budget Pass
# =============================================================================


def team_commitments(clearings: Dict[str, AssetClearing]) -> Dict[str, List[Tuple[str, int]]]:
    """team_id -> [(asset_id, clearing_price), ...] in catalog order."""
    commitments: Dict[str, List[Tuple[str, int]]] = {}
    for asset_id, clearing in clearings.items():
        for team_id in clearing.winners:
            commitments.setdefault(team_id, []).append((asset_id, clearing.clearing_price))
    return commitments


def _void_team(team_id: str, slots: List[Tuple[str, int]], clearings: Dict[str, AssetClearing]) -> None:
    for asset_id, _ in slots:
        clearing = clearings[asset_id]
        clearing.winners = [t for t in clearing.winners if t != team_id]
        clearing.voided_team_ids.append(team_id)
        if not clearing.winners:
            clearing.outcome = AssetOutcome.VOIDED
            clearing.clearing_price = 0


def resolve_auction(state: AuctionState) -> ResolutionReport:
    """
    Resolve every asset in the state and apply the results.

    Mutates asset outcome fields, team budgets and won-asset lists.
    Never raises on stale team references.

    Args:
        state: The auction state (bids already collected)

    Returns:
        ResolutionReport
    """
    budgets = {team_id: team.budget for team_id, team in state.teams.items()}
    report = ResolutionReport()

    # Pass 1: every pool from the same snapshot
    for asset_id, asset in state.assets.items():
        report.clearings[asset_id] = clear_asset(asset, budgets)

    # Pass 2: whole-team budget discipline
    committed = team_commitments(report.clearings)
    for team_id, slots in committed.items():
        total = sum(price for _, price in slots)
        budget = budgets[team_id]

        if total <= budget:
            report.charges[team_id] = total
        else:
            logger.info(
                f"Team {team_id} failed budget check: VC {budget} < Cost {total}. "
                f"Voiding all wins."
            )
            report.voided[team_id] = total
            _void_team(team_id, slots, report.clearings)

    # Apply
    for asset_id, clearing in report.clearings.items():
        asset = state.assets[asset_id]
        asset.winners = list(clearing.winners)
        asset.clearing_price = clearing.clearing_price
        asset.outcome = clearing.outcome
        asset.voided_team_ids = list(clearing.voided_team_ids)

    for team_id, total in report.charges.items():
        team = state.teams[team_id]
        team.budget -= total
        for asset_id, price in committed[team_id]:
            team.assets_won.append(
                WonAsset(name=state.assets[asset_id].name, cost=price, quantity=1)
            )

    logger.info(
        f"Resolved {len(report.clearings)} assets: {report.winner_count} units awarded, "
        f"{len(report.voided)} teams voided"
    )
    return report
