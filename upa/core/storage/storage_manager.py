import asyncio
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from upa.core.errors import PersistenceError
from upa.core.models import AuctionState
from upa.core.storage.json_adapter import JSONFileAdapter
from upa.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Loads and saves the auction state.

    Handles:
    - Load with fallback to a default state on missing/corrupt files
    - Fire-and-forget saves on a single background writer thread, so
      writes land in the order they were requested and never block the
      event loop
    - Synchronous saves for CLI use
    """

    def __init__(
        self,
        state_file: Path,
        default_factory: Optional[Callable[[], AuctionState]] = None,
    ):
        self.state_file = Path(state_file)
        self.adapter = JSONFileAdapter(self.state_file)
        self._default_factory = default_factory or AuctionState
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="upa-save")
        self._pending: List[Future] = []

        logger.info(f"StorageManager initialized at {self.state_file}")

    # =========================================================================
    # Load
    # =========================================================================

    def load(self) -> AuctionState:
        """
        Load the saved state.

        Returns:
            The saved state, or a fresh default state if there is none or it
            cannot be read
        """
        try:
            data = self.adapter.read()
            if data is None:
                logger.info("No saved state, starting from defaults")
                return self._default_factory()
            return AuctionState.from_dict(data)
        except PersistenceError as e:
            logger.error(f"{e}; starting from defaults")
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Saved state at {self.state_file} is malformed ({e}); starting from defaults")
        return self._default_factory()

    # =========================================================================
    # Save
    # =========================================================================

    def save(self, state: AuctionState) -> None:
        """
        Queue a save of the state as it is right now.

        The snapshot is taken synchronously; only the file write happens in
        the background. Failures are logged, never raised.
        """
        data = state.to_dict()
        future = self._executor.submit(self._write, data)
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(future)

    def save_now(self, state: AuctionState) -> None:
        """
        Write the state synchronously.

        Raises:
            PersistenceError: on write failure
        """
        self.adapter.write(state.to_dict())

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every queued save has finished."""
        for future in list(self._pending):
            future.exception(timeout=timeout)
        self._pending = []

    async def aflush(self) -> None:
        """Await every queued save without blocking the loop."""
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*(asyncio.wrap_future(f) for f in pending), return_exceptions=True)
        self._pending = [f for f in self._pending if not f.done()]

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _write(self, data) -> None:
        try:
            self.adapter.write(data)
        except PersistenceError as e:
            logger.error(f"State save failed: {e}")
