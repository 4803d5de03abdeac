"""
Auth - Credentials and connection identity.

Team passwords are stored as salted PBKDF2 hashes. A successful login
yields a Fernet token carrying the actor's identity; clients present it once
in the connection handshake and the decoded Identity is attached to the
connection for every later command.
"""

import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from upa.core.errors import AuthenticationError
from upa.core.models import AuctionState
from upa.utils.logger import get_logger

logger = get_logger("auth")


# PBKDF2 parameters
HASH_ITERATIONS = 100_000
SALT_BYTES = 16

# Fixed salt for deriving the token key from a passphrase
TOKEN_KEY_SALT = b"upa-token-key"


# =============================================================================
# Password Hashing
# =============================================================================


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    """
    Hash a password for storage.

    Returns:
        "<salt hex>$<digest hex>"
    """
    salt = salt or secrets.token_bytes(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, HASH_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a stored hash."""
    try:
        salt_hex, digest_hex = stored.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, HASH_ITERATIONS)
    return hmac.compare_digest(digest.hex(), digest_hex)


def derive_token_key(secret: str) -> bytes:
    """Turn a passphrase into a Fernet key."""
    return base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", secret.encode(), TOKEN_KEY_SALT, HASH_ITERATIONS)
    )


# =============================================================================
# Identity
# =============================================================================


class Role(str, Enum):
    TEAM = "team"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Who is on the other end of a connection."""
    role: Role
    team_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Authenticator:
    """
    Issues and verifies identity tokens.

    Args:
        state: Auction state (team credentials are read from it)
        admin_passcode: Passcode for the admin role
        token_secret: Passphrase for the token key; random per process if empty
        token_ttl_seconds: Token lifetime
    """

    def __init__(
        self,
        state: AuctionState,
        admin_passcode: str,
        token_secret: str = "",
        token_ttl_seconds: int = 12 * 3600,
    ):
        self.state = state
        self.admin_passcode = admin_passcode
        self.token_ttl_seconds = token_ttl_seconds
        key = derive_token_key(token_secret) if token_secret else Fernet.generate_key()
        self._fernet = Fernet(key)

    # =========================================================================
    # Login
    # =========================================================================

    def login_team(self, username: str, password: str) -> str:
        """
        Authenticate a team by username/password.

        Returns:
            Identity token

        Raises:
            AuthenticationError: unknown user or wrong password
        """
        for team in self.state.teams.values():
            if team.username and team.username == username:
                if team.password_hash and verify_password(password, team.password_hash):
                    logger.info(f"Team {team.team_id} logged in")
                    return self.issue(Identity(Role.TEAM, team.team_id))
                break
        raise AuthenticationError("Invalid username or password")

    def login_admin(self, passcode: str) -> str:
        if not hmac.compare_digest(passcode.encode(), self.admin_passcode.encode()):
            raise AuthenticationError("Unauthorized Access. Passcode Required.")
        logger.info("Admin logged in")
        return self.issue(Identity(Role.ADMIN))

    # =========================================================================
    # Tokens
    # =========================================================================

    def issue(self, identity: Identity) -> str:
        body = json.dumps({"role": identity.role.value, "team_id": identity.team_id})
        return self._fernet.encrypt(body.encode()).decode()

    def verify(self, token: str) -> Identity:
        """
        Decode a token into an Identity.

        Raises:
            AuthenticationError: tampered, expired, or for a deleted team
        """
        try:
            body = self._fernet.decrypt(token.encode(), ttl=self.token_ttl_seconds)
            data = json.loads(body)
            identity = Identity(role=Role(data["role"]), team_id=data.get("team_id"))
        except (InvalidToken, ValueError, KeyError, TypeError) as e:
            raise AuthenticationError("Invalid or expired token") from e

        if identity.role == Role.TEAM and identity.team_id not in self.state.teams:
            raise AuthenticationError("Team no longer exists")
        return identity
