"""
Troopz Staking - Persistent State Store

Saves and loads gateway snapshots with:
- Atomic writes (temp file + rename)
- SHA-256 checksum verification on load
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from threading import Lock
from typing import Any, Dict, Optional

from . import config
from .constants import STATE_FORMAT_VERSION
from .staking_exceptions import CorruptedStateError

logger = logging.getLogger(__name__)


class StakingStateStore:
    """
    JSON file store for staking ledger snapshots.

    The file holds ``{"metadata": {...}, "state": {...}}`` where the metadata
    carries the checksum of the canonical state encoding.
    """

    STATE_FILENAME = "staking_state.json"

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or config.STATE_DIR
        self.state_file = os.path.join(self.data_dir, self.STATE_FILENAME)
        os.makedirs(self.data_dir, exist_ok=True)
        self.lock = Lock()

    @staticmethod
    def _encode(state: Dict[str, Any]) -> str:
        return json.dumps(state, indent=2, sort_keys=True)

    @staticmethod
    def _checksum(data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def save(self, state: Dict[str, Any]) -> str:
        """
        Write ``state`` atomically.

        Returns:
            Checksum of the written state
        """
        with self.lock:
            state_json = self._encode(state)
            checksum = self._checksum(state_json)
            package = {
                "metadata": {
                    "timestamp": time.time(),
                    "checksum": checksum,
                    "version": STATE_FORMAT_VERSION,
                },
                "state": state,
            }

            temp_file = self.state_file + ".tmp"
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(json.dumps(package, indent=2, sort_keys=True))
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, self.state_file)

            logger.info(
                "Staking state saved",
                extra={"event": "persistence.save", "checksum": checksum[:8], "path": self.state_file},
            )
            return checksum

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the saved state.

        Returns:
            The state dict, or None if nothing was saved yet

        Raises:
            CorruptedStateError: If the file is unreadable or fails its checksum
        """
        with self.lock:
            if not os.path.exists(self.state_file):
                return None

            try:
                with open(self.state_file, "r", encoding="utf-8") as f:
                    package = json.load(f)
            except json.JSONDecodeError as exc:
                raise CorruptedStateError(
                    f"state file is not valid JSON: {exc}",
                    details={"path": self.state_file},
                ) from exc

            metadata = package.get("metadata", {})
            state = package.get("state")
            if state is None:
                raise CorruptedStateError("state file has no state", details={"path": self.state_file})

            expected = metadata.get("checksum")
            actual = self._checksum(self._encode(state))
            if expected != actual:
                logger.error(
                    "Staking state checksum mismatch",
                    extra={"event": "persistence.corrupted", "expected": expected, "actual": actual},
                )
                raise CorruptedStateError(
                    "state checksum mismatch",
                    details={"path": self.state_file, "expected": expected, "actual": actual},
                )
            return state
