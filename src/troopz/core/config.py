"""
Troopz Staking Configuration

All settings are read from environment variables once, at import time.
Invalid values fail fast with ConfigurationError instead of silently
falling back to defaults.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from .staking_exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    """Read a non-negative integer setting from the environment."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{env_var} must be >= {minimum}, got {value}")
    return value


def _get_network(env_var: str) -> str:
    value = os.getenv(env_var, NetworkType.TESTNET.value).strip().lower()
    valid = {network.value for network in NetworkType}
    if value not in valid:
        raise ConfigurationError(f"{env_var} must be one of {sorted(valid)}, got {value!r}")
    return value


NETWORK = _get_network("TROOPZ_NETWORK")

LOG_LEVEL = os.getenv("TROOPZ_LOG_LEVEL", "INFO").strip().upper()
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    raise ConfigurationError(f"TROOPZ_LOG_LEVEL is not a logging level: {LOG_LEVEL!r}")

LOG_FILE = os.getenv("TROOPZ_LOG_FILE", "").strip()

# 0 = unlimited
MAX_BATCH_SIZE = _get_int("TROOPZ_MAX_BATCH_SIZE", 0)

STATE_DIR = os.getenv("TROOPZ_STATE_DIR", os.path.join(os.getcwd(), "data")).strip()


class Config:
    """Snapshot of the environment settings, importable as a single object."""

    NETWORK = NETWORK
    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE
    MAX_BATCH_SIZE = MAX_BATCH_SIZE
    STATE_DIR = STATE_DIR


__all__ = [
    "Config",
    "ConfigurationError",
    "NetworkType",
    "NETWORK",
    "LOG_LEVEL",
    "LOG_FILE",
    "MAX_BATCH_SIZE",
    "STATE_DIR",
]
