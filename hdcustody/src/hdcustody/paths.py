"""
Path helpers for the hdcustody data directory.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "HDCUSTODY_DATA_DIR"
CONFIG_FILE_ENV = "HDCUSTODY_CONFIG_FILE"


def get_default_data_dir() -> Path:
    """
    Get the default data directory.

    Returns ~/.hdcustody or $HDCUSTODY_DATA_DIR if set.
    Creates the directory if it doesn't exist.
    """
    env_path = os.getenv(DATA_DIR_ENV)
    data_dir = Path(env_path) if env_path else Path.home() / ".hdcustody"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_wallets_dir(data_dir: Path | None = None) -> Path:
    if data_dir is None:
        data_dir = get_default_data_dir()
    return data_dir / "wallets"


def get_wallet_path(name: str, data_dir: Path | None = None) -> Path:
    """Storage location for the wallet called ``name``."""
    if not name or "/" in name or name in (".", ".."):
        raise ValueError(f"Invalid wallet name: {name!r}")
    return get_wallets_dir(data_dir) / name
