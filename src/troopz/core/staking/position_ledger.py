"""
Position ledger: custodial bookkeeping of staked token ids.

Knows nothing about rates. Tracks, per (staker, collection), which token
ids are held in custody, and per (collection, token id) which staker holds
it, so no id can sit in two positions at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from ..staking_exceptions import AlreadyStakedError, NotStakedError

logger = logging.getLogger(__name__)


@dataclass
class Position:
    """Tokens one staker holds in custody for one collection.

    Zeroed rather than deleted on full withdrawal.
    """

    staker: str
    collection: str
    token_ids: set[int] = field(default_factory=set)

    @property
    def count(self) -> int:
        return len(self.token_ids)


class PositionLedger:
    """Custody ledger keyed by (staker, collection)."""

    def __init__(self) -> None:
        # staker -> collection -> Position
        self._positions: dict[str, dict[str, Position]] = {}
        # collection -> token_id -> staker
        self._custody: dict[str, dict[int, str]] = {}

    def add(self, staker: str, collection: str, token_id: int) -> Position:
        """
        Record ``token_id`` as staked by ``staker``.

        Raises:
            AlreadyStakedError: If the id is already in any position for
                this collection
        """
        staker, collection = staker.lower(), collection.lower()
        holders = self._custody.setdefault(collection, {})
        if token_id in holders:
            raise AlreadyStakedError(
                f"token {token_id} of {collection} is already staked",
                details={"collection": collection, "token_id": token_id},
            )
        position = self._position(staker, collection)
        position.token_ids.add(token_id)
        holders[token_id] = staker
        return position

    def remove(self, staker: str, collection: str, token_id: int) -> Position:
        """
        Release ``token_id`` from ``staker``'s position.

        Raises:
            NotStakedError: If the id is not in the staker's position
        """
        staker, collection = staker.lower(), collection.lower()
        position = self._positions.get(staker, {}).get(collection)
        if position is None or token_id not in position.token_ids:
            raise NotStakedError(
                f"token {token_id} of {collection} is not staked by {staker}",
                details={"collection": collection, "token_id": token_id, "staker": staker},
            )
        position.token_ids.discard(token_id)
        del self._custody[collection][token_id]
        return position

    def _position(self, staker: str, collection: str) -> Position:
        by_collection = self._positions.setdefault(staker, {})
        position = by_collection.get(collection)
        if position is None:
            position = Position(staker=staker, collection=collection)
            by_collection[collection] = position
        return position

    # ==================== Lookups ====================

    def count_of(self, staker: str, collection: str) -> int:
        position = self._positions.get(staker.lower(), {}).get(collection.lower())
        return position.count if position else 0

    def token_ids(self, staker: str, collection: str) -> list[int]:
        position = self._positions.get(staker.lower(), {}).get(collection.lower())
        return sorted(position.token_ids) if position else []

    def holder_of(self, collection: str, token_id: int) -> str | None:
        return self._custody.get(collection.lower(), {}).get(token_id)

    def counts(self, staker: str) -> dict[str, int]:
        """Nonzero counts for every collection ``staker`` has tokens in."""
        return {
            collection: position.count
            for collection, position in self._positions.get(staker.lower(), {}).items()
            if position.count > 0
        }

    def positions(self, staker: str) -> list[Position]:
        """Every position ``staker`` has ever had, including zeroed ones."""
        return list(self._positions.get(staker.lower(), {}).values())

    def has_other_than(self, staker: str, collection: str) -> bool:
        """Whether ``staker`` holds anything outside ``collection``."""
        collection = collection.lower()
        return any(c != collection for c in self.counts(staker))

    def stakers(self) -> list[str]:
        return list(self._positions)

    # ==================== Snapshot ====================

    def snapshot(self) -> Dict[str, Any]:
        return {
            staker: {
                collection: sorted(position.token_ids)
                for collection, position in by_collection.items()
            }
            for staker, by_collection in self._positions.items()
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self._positions = {}
        self._custody = {}
        for staker, by_collection in snapshot.items():
            for collection, token_ids in by_collection.items():
                position = self._position(staker, collection)
                for token_id in token_ids:
                    position.token_ids.add(int(token_id))
                    self._custody.setdefault(collection, {})[int(token_id)] = staker
