"""
Shared fixtures for UPA tests.
"""

import pytest

from upa.core.auth import hash_password
from upa.core.models import Asset, AuctionPhase, AuctionRun, AuctionState, Team


class FakeTime:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_state(assets=(), teams=(), phase=AuctionPhase.IDLE, duration=60) -> AuctionState:
    """
    Build a state from compact tuples.

    Args:
        assets: (asset_id, min_bid, quantity) tuples
        teams: (team_id, budget) tuples
    """
    state = AuctionState(run=AuctionRun(phase=phase, duration_seconds=duration))
    for asset_id, min_bid, quantity in assets:
        state.assets[asset_id] = Asset(
            asset_id=asset_id, name=f"Asset {asset_id}", min_bid=min_bid, quantity=quantity
        )
    for team_id, budget in teams:
        state.teams[team_id] = Team(
            team_id=team_id,
            name=f"Team {team_id}",
            username=team_id.lower(),
            password_hash=hash_password(team_id.lower()),
            budget=budget,
            starting_budget=budget,
        )
    return state


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def build_state():
    return make_state
