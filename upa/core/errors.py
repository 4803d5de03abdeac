"""
Error taxonomy for the auction.

- ValidationError: bad amounts, unknown assets/teams, protected fields
- StateConflictError: command not allowed in the current lifecycle phase
- PersistenceError: state file could not be read or written
- AuthenticationError: bad credentials or token at handshake

None of these are fatal: each rejected command is a no-op plus a reason
reported to the actor that sent it.
"""


class AuctionError(Exception):
    """Base class for all auction errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AuctionError, ValueError):
    """Input rejected before any state change."""


class StateConflictError(AuctionError, RuntimeError):
    """Command conflicts with the current auction phase."""


class PersistenceError(AuctionError):
    """Snapshot save/load failure."""


class AuthenticationError(AuctionError):
    """Handshake credentials or token rejected."""
