"""
Shared CLI setup: logging, settings and wallet location resolution.
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from hdcustody.paths import get_wallet_path
from hdcustody.settings import CustodySettings, get_settings, reset_settings


def setup_logging(level: str = "INFO") -> None:
    """
    Configure loguru logging with consistent format.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level.upper(),
        colorize=True,
    )


def setup_cli(log_level: str | None = None, data_dir: Path | None = None) -> CustodySettings:
    """
    Load settings and configure logging for a CLI command.

    An explicit ``log_level`` wins over the configured one.
    """
    reset_settings()
    overrides = {"data_dir": data_dir} if data_dir is not None else {}
    settings = get_settings(**overrides)
    setup_logging(log_level or settings.logging.level)
    return settings


def resolve_wallet_path(
    settings: CustodySettings, name: str, path: Path | None = None
) -> Path:
    """Explicit ``path`` if given, otherwise ``<data_dir>/wallets/<name>``."""
    if path is not None:
        return path
    return get_wallet_path(name, settings.get_data_dir())
