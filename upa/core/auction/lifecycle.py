"""
Lifecycle - The auction state machine.

    IDLE --start--> RUNNING --expire / force_stop--> RESOLVED --reset--> IDLE

Every mutation of the auction goes through this class. It is not
thread-safe by itself: callers run it on a single sequential execution
context (the server's command dispatcher). Natural expiry and forced stop
both end in `_resolve`, which latches on the RUNNING phase so results are
computed exactly once per run.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from upa.core.auction.clearing import ResolutionReport, resolve_auction
from upa.core.auction.clock import AuctionClock
from upa.core.auction.history import HistoryRecorder
from upa.core.auction.ledger import BidLedger
from upa.core.errors import StateConflictError, ValidationError
from upa.core.events import (
    AUCTION_RESET,
    AUCTION_RESOLVED,
    AUCTION_START,
    BIDS_UPDATED,
    DURATION_UPDATED,
    TEAMS_UPDATED,
    TIMER_TICK,
    Audience,
    EventSink,
    NullSink,
)
from upa.core.models import Asset, AuctionPhase, AuctionState, HistoryEntry
from upa.utils.logger import get_logger
from upa.utils.validation import validate_duration

logger = get_logger("lifecycle")


class AuctionLifecycle:
    """
    Orchestrates clock, ledger, clearing engine and history.

    Args:
        state: Shared auction state
        clock: Auction clock (built from the run's duration if omitted)
        events: Broadcast sink
        storage: Optional StorageManager; every transition queues a save
        time_source: Clock/timestamp source for tests
    """

    def __init__(
        self,
        state: AuctionState,
        clock: Optional[AuctionClock] = None,
        events: Optional[EventSink] = None,
        storage=None,
        time_source: Callable[[], float] = time.time,
    ):
        self.state = state
        self.clock = clock or AuctionClock(state.run.duration_seconds, time_source)
        self.ledger = BidLedger(state)
        self.history = HistoryRecorder(state, time_source)
        self.events = events or NullSink()
        self.storage = storage
        self.last_report: Optional[ResolutionReport] = None

        self._recover()

    def _recover(self) -> None:
        """Pick a saved run back up after a restart."""
        run = self.state.run
        self.clock.duration_seconds = run.duration_seconds
        if run.phase == AuctionPhase.RUNNING:
            if run.end_time is None:
                run.end_time = self.clock.arm()
            else:
                self.clock.resume(run.end_time)
            logger.info(f"Recovered running auction ({self.clock.remaining()}s left)")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def phase(self) -> AuctionPhase:
        return self.state.run.phase

    @property
    def running(self) -> bool:
        return self.state.run.active

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self) -> float:
        """
        Open the auction.

        Returns:
            Absolute end time

        Raises:
            StateConflictError: not idle
        """
        if self.phase == AuctionPhase.RUNNING:
            raise StateConflictError("Auction is already running.")
        if self.phase == AuctionPhase.RESOLVED:
            raise StateConflictError("Auction already resolved; reset before starting again.")

        run = self.state.run
        run.end_time = self.clock.arm(run.duration_seconds)
        run.phase = AuctionPhase.RUNNING

        logger.info(f"Auction started for {run.duration_seconds}s")
        payload = {"endTime": run.end_time, "durationSeconds": run.duration_seconds}
        self._broadcast_all(AUCTION_START, payload)
        self._save()
        return run.end_time

    def submit_bid(self, team_id: str, asset_id: str, amount: int) -> Tuple[bool, str]:
        """
        Record a bid for a team.

        Returns:
            (accepted, rejection_reason)
        """
        # An end time already passed resolves before the bid is considered
        if self.running and self.clock.remaining() == 0:
            self.tick()

        accepted, reason = self.ledger.submit_bid(asset_id, team_id, amount)
        if not accepted:
            logger.debug(f"Bid rejected: team={team_id} asset={asset_id} reason={reason}")
            return False, reason

        self.events.broadcast(
            Audience.ADMINS,
            BIDS_UPDATED,
            {"assetId": asset_id, "bids": self.ledger.bids_for(asset_id)},
        )
        self._save()
        return True, ""

    def tick(self) -> int:
        """
        Advance the clock by one observation.

        Broadcasts the remaining time and resolves on expiry. Does nothing
        unless the auction is running, so a late tick after a forced stop
        is harmless.

        Returns:
            Seconds remaining
        """
        if not self.running:
            return self.clock.remaining()

        remaining, expired = self.clock.poll()
        self._broadcast_all(TIMER_TICK, {"secondsRemaining": remaining})
        if expired:
            logger.info("Auction timer expired. Resolving results now.")
            self._resolve()
        return remaining

    def force_stop(self) -> ResolutionReport:
        """
        Stop the running auction now and resolve it.

        Raises:
            StateConflictError: not running
        """
        if not self.running:
            logger.info("Admin attempted to stop inactive auction.")
            raise StateConflictError("Auction is already stopped or finished.")

        self.clock.force_expire()
        logger.info("Admin forced auction stop. Resolving results now.")
        return self._resolve()

    def _resolve(self) -> Optional[ResolutionReport]:
        if not self.running:
            return None

        # Latch before computing
        run = self.state.run
        run.phase = AuctionPhase.RESOLVED
        run.end_time = None
        self.clock.disarm()

        report = resolve_auction(self.state)
        self.last_report = report

        self._broadcast_all(AUCTION_RESOLVED, {"assets": self.asset_results()})
        self.events.broadcast(Audience.ADMINS, TEAMS_UPDATED, {"teams": self.team_views(admin=True)})
        self.events.broadcast(Audience.PARTICIPANTS, TEAMS_UPDATED, {"teams": self.team_views()})
        self._save()
        return report

    def set_duration(self, seconds: int) -> int:
        """
        Configure the duration of the next run. Only allowed while idle.

        Raises:
            StateConflictError: auction running or awaiting reset
            ValidationError: not a positive whole number of seconds
        """
        if self.running:
            raise StateConflictError("Cannot change duration while the auction is running.")
        if self.phase != AuctionPhase.IDLE:
            raise StateConflictError("Reset the finished auction before changing its duration.")
        valid, err = validate_duration(seconds)
        if not valid:
            raise ValidationError(err)

        self.state.run.duration_seconds = seconds
        self.clock.duration_seconds = seconds
        logger.info(f"Auction duration set to {seconds}s")
        self.events.broadcast(Audience.ADMINS, DURATION_UPDATED, {"durationSeconds": seconds})
        self._save()
        return seconds

    def reset(self) -> Optional[HistoryEntry]:
        """
        Archive a resolved game and return to a clean IDLE state.

        Safe to call repeatedly: only a RESOLVED run with a non-empty catalog
        is archived, and restoring budgets is a no-op on a clean state.

        Returns:
            The recorded HistoryEntry, if any

        Raises:
            StateConflictError: auction running
        """
        if self.running:
            raise StateConflictError("Cannot reset while the auction is running; stop it first.")

        entry = None
        if self.phase == AuctionPhase.RESOLVED and self.state.assets:
            entry = self.history.record()

        for asset in self.state.assets.values():
            asset.clear_results()
        for team in self.state.teams.values():
            team.restore_budget()

        run = self.state.run
        run.phase = AuctionPhase.IDLE
        run.end_time = None
        self.clock.reset()
        self.last_report = None

        logger.info("Auction reset")
        self._broadcast_all(AUCTION_RESET, {})
        self._save()
        return entry

    # =========================================================================
    # Views
    # =========================================================================

    def asset_results(self):
        """Assets without bids (sealed), including resolution fields."""
        return [asset.to_dict(include_bids=False) for asset in self.state.assets.values()]

    def team_views(self, admin: bool = False):
        """Teams without credentials; admins also see usernames."""
        views = []
        for team in self.state.teams.values():
            data = team.to_dict()
            if admin:
                data["username"] = team.username
            views.append(data)
        return views

    def _run_view(self) -> Dict[str, Any]:
        run = self.state.run
        return {
            "phase": run.phase.value,
            "active": run.active,
            "endTime": run.end_time,
            "secondsRemaining": self.clock.remaining(),
            "durationSeconds": run.duration_seconds,
        }

    def public_view(self, team_id: Optional[str] = None) -> Dict[str, Any]:
        """State as shown to a participant; other teams' bids stay sealed."""
        view = self._run_view()
        view["assets"] = self.asset_results()
        view["teams"] = self.team_views()
        if team_id is not None:
            view["myBids"] = self.ledger.bids_by_team(team_id)
        return view

    def admin_view(self) -> Dict[str, Any]:
        view = self._run_view()
        view["assets"] = [self._admin_asset(asset) for asset in self.state.assets.values()]
        view["teams"] = self.team_views(admin=True)
        view["historyCount"] = len(self.state.history)
        return view

    @staticmethod
    def _admin_asset(asset: Asset) -> Dict[str, Any]:
        data = asset.to_dict(include_bids=False)
        data["current_bids"] = asset.bid_amounts()
        return data

    # =========================================================================
    # Internals
    # =========================================================================

    def _broadcast_all(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.broadcast(Audience.PARTICIPANTS, event, payload)
        self.events.broadcast(Audience.ADMINS, event, payload)

    def _save(self) -> None:
        if self.storage is not None:
            self.storage.save(self.state)
