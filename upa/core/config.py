"""
Server configuration for UPA.

Defines auction timing, budgets, network endpoints and auth parameters.
Values come from dataclass defaults, overridden by a `.env` file and
`UPA_*` environment variables.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv


# Environment variable prefix for all settings
ENV_PREFIX = "UPA_"


@dataclass
class AuctionConfig:
    """Server-wide configuration parameters"""

    # Auction parameters
    duration_seconds: int = 30 * 60     # Default run length (30 minutes)
    starting_budget: int = 500_000      # Budget given to new/seeded teams
    tick_interval: float = 1.0          # Seconds between timer ticks

    # Network
    host: str = "127.0.0.1"
    port: int = 9100

    # Auth
    admin_passcode: str = "admin123"
    token_secret: str = ""              # Fernet key; generated per process if empty
    token_ttl_seconds: int = 12 * 3600

    # Paths
    state_file: Path = Path("data/auction_state.json")
    log_dir: Path = Path("logs")


def _coerce(raw: str, current):
    """Convert an environment string to the type of the default value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, Path):
        return Path(raw).expanduser()
    return raw


def load_config(env_file: Optional[str] = None, **overrides) -> AuctionConfig:
    """
    Load configuration from `.env` and the process environment.

    Args:
        env_file: Optional path to a dotenv file (defaults to the nearest .env
                  from the working directory up)
        **overrides: Explicit values that win over the environment

    Returns:
        AuctionConfig instance
    """
    dotenv_path = env_file or find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)

    config = AuctionConfig()
    for f in fields(AuctionConfig):
        raw = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is not None and raw != "":
            setattr(config, f.name, _coerce(raw, getattr(config, f.name)))

    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, name):
            raise ValueError(f"Unknown config option: {name}")
        setattr(config, name, value)

    if config.duration_seconds <= 0:
        raise ValueError(f"duration_seconds must be positive, got {config.duration_seconds}")

    return config
