"""
Bid Ledger - Sealed bids per asset, last value wins.

Each team holds at most one bid per asset. Resubmitting overwrites the
amount and takes a fresh sequence number from the state container; there is
no increment rule. Affordability is only checked against the team's current
budget here; the cross-asset check happens at resolution.
"""

from typing import Dict, Tuple

from upa.core.models import AuctionState, PlacedBid
from upa.utils.logger import get_logger

logger = get_logger("ledger")


class BidLedger:
    """
    Reads and writes the `current_bids` of every asset in an AuctionState.
    """

    def __init__(self, state: AuctionState):
        self.state = state

    # =========================================================================
    # Writes
    # =========================================================================

    def submit_bid(self, asset_id: str, team_id: str, amount: int) -> Tuple[bool, str]:
        """
        Place or replace a team's bid on an asset.

        Args:
            asset_id: Target asset
            team_id: Bidding team
            amount: Per-unit bid

        Returns:
            (accepted, rejection_reason)
        """
        if not self.state.run.active:
            return False, "Auction is not active."

        asset = self.state.assets.get(asset_id)
        team = self.state.teams.get(team_id)
        if asset is None or team is None:
            return False, "Invalid Asset or Team."

        if isinstance(amount, bool) or not isinstance(amount, int):
            return False, "Bid amount must be a whole number."

        if amount < asset.min_bid:
            return False, f"Bid must be at least {asset.min_bid:,} VC."

        if amount > team.budget:
            return False, f"Bid of {amount:,} VC exceeds your current VC balance."

        # Re-insert so the mapping also reads in latest-submission order
        asset.current_bids.pop(team_id, None)
        asset.current_bids[team_id] = PlacedBid(
            amount=amount,
            sequence=self.state.next_bid_sequence(),
        )

        logger.debug(f"Bid recorded: asset={asset_id} team={team_id} amount={amount}")
        return True, ""

    def clear(self) -> None:
        """Drop every bid on every asset."""
        for asset in self.state.assets.values():
            asset.current_bids = {}

    def drop_team(self, team_id: str) -> int:
        """
        Remove all bids placed by a team.

        Returns:
            Number of bids removed
        """
        removed = 0
        for asset in self.state.assets.values():
            if asset.current_bids.pop(team_id, None) is not None:
                removed += 1
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    def bids_for(self, asset_id: str) -> Dict[str, int]:
        """team_id -> amount for one asset (empty for unknown assets)."""
        asset = self.state.assets.get(asset_id)
        if asset is None:
            return {}
        return asset.bid_amounts()

    def bid_of(self, asset_id: str, team_id: str) -> int:
        """A team's current bid on an asset, 0 if none."""
        return self.bids_for(asset_id).get(team_id, 0)

    def bids_by_team(self, team_id: str) -> Dict[str, int]:
        """asset_id -> amount for one team."""
        return {
            asset_id: asset.current_bids[team_id].amount
            for asset_id, asset in self.state.assets.items()
            if team_id in asset.current_bids
        }

    def bid_count(self) -> int:
        return sum(len(asset.current_bids) for asset in self.state.assets.values())
