"""
History - Append-only log of resolved games.

A snapshot is taken right before a reset wipes the resolved state. Entries
hold plain-dict deep copies, so later changes to the live catalog or teams
never leak into recorded games.
"""

import time
from typing import Callable, List, Optional

from upa.core.models import AuctionState, HistoryEntry
from upa.utils.logger import get_logger

logger = get_logger("history")


class HistoryRecorder:
    """Appends HistoryEntry snapshots to `state.history`."""

    def __init__(self, state: AuctionState, time_source: Callable[[], float] = time.time):
        self.state = state
        self._now = time_source

    def record(self) -> HistoryEntry:
        """
        Snapshot the current assets and teams.

        Returns:
            The appended entry
        """
        next_id = self.state.history[-1].game_id + 1 if self.state.history else 1
        entry = HistoryEntry(
            game_id=next_id,
            timestamp=self._now(),
            duration_seconds=self.state.run.duration_seconds,
            assets=[asset.to_dict() for asset in self.state.assets.values()],
            teams=[team.to_dict() for team in self.state.teams.values()],
        )
        self.state.history.append(entry)
        logger.info(f"Game #{entry.game_id} recorded ({len(entry.assets)} assets)")
        return entry

    def entries(self) -> List[HistoryEntry]:
        return list(self.state.history)

    def latest(self) -> Optional[HistoryEntry]:
        return self.state.history[-1] if self.state.history else None

    def get(self, game_id: int) -> Optional[HistoryEntry]:
        for entry in self.state.history:
            if entry.game_id == game_id:
                return entry
        return None
