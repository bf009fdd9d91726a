"""
Collection registry: per-collection whitelist flag and reward-rate history.

Rates are never overwritten in place. Every ``set_rate`` appends a
``RateChange`` effective immediately, so the accrual engine can value any
past interval at the rate that was actually in force, however long ago a
staker last checkpointed.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

from ..staking_exceptions import InvalidRateError, UnknownCollectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateChange:
    """A reward rate (units per token per day) effective from ``effective_at``."""

    effective_at: int
    rate: int


@dataclass
class CollectionConfig:
    """Whitelist flag and append-only rate history for one collection."""

    address: str
    whitelisted: bool = False
    history: list[RateChange] = field(default_factory=list)
    # Parallel to ``history`` for bisect lookups
    _timestamps: list[int] = field(default_factory=list, repr=False)

    def rate_at(self, at: int) -> int:
        """Rate in force at ``at``; 0 before the first change took effect."""
        index = bisect.bisect_right(self._timestamps, at) - 1
        if index < 0:
            return 0
        return self.history[index].rate

    def changes_between(self, start: int, end: int) -> Iterator[RateChange]:
        """Yield changes with ``start < effective_at < end``."""
        lo = bisect.bisect_right(self._timestamps, start)
        hi = bisect.bisect_left(self._timestamps, end)
        for index in range(lo, hi):
            yield self.history[index]

    def append(self, change: RateChange) -> None:
        if self.history and change.effective_at < self.history[-1].effective_at:
            raise InvalidRateError(
                f"rate change at {change.effective_at} precedes last change "
                f"at {self.history[-1].effective_at}",
                details={"collection": self.address},
            )
        if self.history and change.effective_at == self.history[-1].effective_at:
            # Same instant: the earlier value was never in force
            self.history[-1] = change
            return
        self.history.append(change)
        self._timestamps.append(change.effective_at)

    def undo_append(self, previous: RateChange | None) -> None:
        """Take back the latest ``append``; ``previous`` was the last entry before it."""
        if previous is not None and self.history[-1].effective_at == previous.effective_at:
            self.history[-1] = previous
            return
        self.history.pop()
        self._timestamps.pop()


class CollectionRegistry:
    """
    Registry of staking-eligible collections.

    Holds, per collection address, whether it is whitelisted and every rate
    it has ever had. Entries are created on first configuration and never
    deleted.
    """

    def __init__(self) -> None:
        self._collections: dict[str, CollectionConfig] = {}

    def _entry(self, collection: str) -> CollectionConfig:
        key = collection.lower()
        entry = self._collections.get(key)
        if entry is None:
            entry = CollectionConfig(address=key)
            self._collections[key] = entry
        return entry

    # ==================== Configuration ====================

    def set_whitelisted(self, collection: str, whitelisted: bool) -> None:
        self._entry(collection).whitelisted = bool(whitelisted)
        logger.info(
            "Collection whitelist updated",
            extra={
                "event": "registry.whitelist",
                "collection": collection.lower()[:10],
                "whitelisted": bool(whitelisted),
            },
        )

    def set_rate(self, collection: str, rate: int, now: int) -> RateChange:
        """
        Append a rate change effective at ``now``.

        Args:
            collection: Collection address
            rate: Reward units per staked token per day
            now: Current timestamp (seconds)

        Returns:
            The recorded change

        Raises:
            InvalidRateError: If rate is negative or not an integer, or
                ``now`` precedes the last recorded change
        """
        if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
            raise InvalidRateError(
                f"rate must be a non-negative integer, got {rate!r}",
                details={"collection": collection.lower()},
            )
        change = RateChange(effective_at=int(now), rate=rate)
        self._entry(collection).append(change)
        logger.info(
            "Collection rate updated",
            extra={
                "event": "registry.rate",
                "collection": collection.lower()[:10],
                "rate": rate,
                "effective_at": change.effective_at,
            },
        )
        return change

    def revert_rate(self, collection: str, previous: RateChange | None) -> None:
        """Undo the latest ``set_rate`` on ``collection``."""
        self._collections[collection.lower()].undo_append(previous)

    # ==================== Lookups ====================

    def is_whitelisted(self, collection: str) -> bool:
        entry = self._collections.get(collection.lower())
        return entry.whitelisted if entry else False

    def has_rate(self, collection: str) -> bool:
        entry = self._collections.get(collection.lower())
        return bool(entry and entry.history)

    def current_rate(self, collection: str, at: int) -> int:
        """
        Rate in force at ``at``: the last change with ``effective_at <= at``.

        Raises:
            UnknownCollectionError: If no rate was ever set for the collection
        """
        entry = self._collections.get(collection.lower())
        if entry is None or not entry.history:
            raise UnknownCollectionError(
                f"no reward rate configured for {collection}",
                details={"collection": collection.lower()},
            )
        return entry.rate_at(at)

    def rate_changes_between(self, collection: str, start: int, end: int) -> list[RateChange]:
        """Changes for ``collection`` strictly inside ``(start, end)``."""
        entry = self._collections.get(collection.lower())
        if entry is None:
            return []
        return list(entry.changes_between(start, end))

    def rate_history(self, collection: str) -> list[RateChange]:
        entry = self._collections.get(collection.lower())
        return list(entry.history) if entry else []

    def last_change(self, collection: str) -> RateChange | None:
        entry = self._collections.get(collection.lower())
        return entry.history[-1] if entry and entry.history else None

    # ==================== Snapshot ====================

    def snapshot(self) -> Dict[str, Any]:
        return {
            address: {
                "whitelisted": entry.whitelisted,
                "history": [[c.effective_at, c.rate] for c in entry.history],
            }
            for address, entry in self._collections.items()
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self._collections = {}
        for address, data in snapshot.items():
            entry = self._entry(address)
            entry.whitelisted = bool(data.get("whitelisted", False))
            for effective_at, rate in data.get("history", []):
                entry.append(RateChange(effective_at=int(effective_at), rate=int(rate)))
