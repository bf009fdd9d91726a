"""
Accrual engine: turns staked positions into claimable reward.

Each staker carries a cached weight (reward units per day), the timestamp
of their last checkpoint, and a settled claimable balance. Reward is never
pushed to stakers when an administrator changes a rate; it is integrated
lazily, per staker, against the registry's rate history whenever that
staker is previewed or checkpointed.

Only whole reward-days are ever paid. A checkpoint advances the staker's
clock by whole days, so the fractional day in progress carries over to the
next checkpoint instead of being lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, NamedTuple

from ..constants import SECONDS_PER_DAY
from .collection_registry import CollectionRegistry
from .position_ledger import PositionLedger

logger = logging.getLogger(__name__)


@dataclass
class StakerAccount:
    """Accrual state for one staker.

    ``weight`` is a fast cache: nudged on every deposit and withdrawal, but
    only authoritative immediately after a checkpoint.
    """

    staker: str
    last_checkpoint: int
    weight: int = 0
    claimable: int = 0


class RewardPreview(NamedTuple):
    pending: int
    last_checkpoint: int
    weight: int


class AccrualEngine:
    """Per-staker reward accrual over CollectionRegistry rate history."""

    def __init__(self, registry: CollectionRegistry, ledger: PositionLedger) -> None:
        self.registry = registry
        self.ledger = ledger
        self._accounts: dict[str, StakerAccount] = {}

    def account(self, staker: str) -> StakerAccount | None:
        return self._accounts.get(staker.lower())

    def ensure_account(self, staker: str, now: int) -> StakerAccount:
        """Get ``staker``'s account, opening it at ``now`` on first interaction."""
        key = staker.lower()
        account = self._accounts.get(key)
        if account is None:
            account = StakerAccount(staker=key, last_checkpoint=now)
            self._accounts[key] = account
        return account

    def account_state(self, staker: str) -> StakerAccount | None:
        """Detached copy of ``staker``'s account, for undoing a failed call."""
        account = self.account(staker)
        return replace(account) if account else None

    def reset_account(self, staker: str, state: StakerAccount | None) -> None:
        """Put back an ``account_state()`` copy; ``None`` forgets the account."""
        key = staker.lower()
        if state is None:
            self._accounts.pop(key, None)
        else:
            self._accounts[key] = replace(state)

    # ==================== Weight ====================

    def preview_weight(self, staker: str, now: int) -> int:
        """Authoritative weight at ``now``, recomputed from positions and rates."""
        return self._weight_at(self.ledger.counts(staker), now)

    def _weight_at(self, counts: dict[str, int], at: int) -> int:
        return sum(
            count * self.registry.current_rate(collection, at)
            for collection, count in counts.items()
        )

    def nudge_weight(self, staker: str, delta: int, now: int) -> int:
        """Adjust the cached weight without settling anything."""
        account = self.ensure_account(staker, now)
        account.weight = max(0, account.weight + delta)
        return account.weight

    # ==================== Accrual ====================

    def _accrue(self, account: StakerAccount, now: int) -> tuple[int, int]:
        """
        Reward earned over the whole days since the last checkpoint.

        The window ``[last, last + days * SECONDS_PER_DAY)`` is split at every
        rate change of the staker's collections that falls strictly inside
        it; each piece is valued at the weight in force during it.

        Returns:
            (pending reward, end of the settled window)
        """
        last = account.last_checkpoint
        days = max(0, now - last) // SECONDS_PER_DAY
        window_end = last + days * SECONDS_PER_DAY
        counts = self.ledger.counts(account.staker)
        if days == 0 or not counts:
            return 0, window_end

        boundaries = sorted(
            {
                change.effective_at
                for collection in counts
                for change in self.registry.rate_changes_between(collection, last, window_end)
            }
        )
        boundaries.append(window_end)

        reward_seconds = 0
        cursor = last
        for boundary in boundaries:
            reward_seconds += self._weight_at(counts, cursor) * (boundary - cursor)
            cursor = boundary

        return reward_seconds // SECONDS_PER_DAY, window_end

    def preview_accrued(self, staker: str, now: int) -> RewardPreview:
        """
        Preview pending reward without mutating any state.

        Returns:
            (pending reward, last checkpoint, authoritative weight at ``now``)
        """
        account = self.account(staker)
        if account is None:
            return RewardPreview(0, 0, self.preview_weight(staker, now))
        pending, _ = self._accrue(account, now)
        logger.debug(
            "Rewards previewed",
            extra={
                "event": "accrual.preview",
                "staker": account.staker[:10],
                "pending": pending,
            },
        )
        return RewardPreview(pending, account.last_checkpoint, self.preview_weight(staker, now))

    def checkpoint(self, staker: str, now: int) -> int:
        """
        Settle pending reward into ``claimable`` and resync the cached weight.

        The clock advances by whole days only. A staker with nothing staked
        has nothing in progress, so their clock jumps straight to ``now``.

        Returns:
            Reward settled by this checkpoint
        """
        account = self.ensure_account(staker, now)
        pending, window_end = self._accrue(account, now)
        account.claimable += pending
        account.weight = self.preview_weight(staker, now)
        if self.ledger.counts(account.staker):
            account.last_checkpoint = window_end
        else:
            account.last_checkpoint = max(account.last_checkpoint, now)

        logger.debug(
            "Rewards checkpointed",
            extra={
                "event": "accrual.checkpoint",
                "staker": account.staker[:10],
                "settled": pending,
                "claimable": account.claimable,
                "weight": account.weight,
                "last_checkpoint": account.last_checkpoint,
            },
        )
        return pending

    def claim(self, staker: str, pay: Callable[[str, int], None]) -> int:
        """
        Pay out the whole claimable balance through ``pay``.

        ``claimable`` is zeroed only after ``pay`` returns, so a failed
        payout leaves it intact. Does not checkpoint.

        Returns:
            Amount paid (0 if nothing was claimable)
        """
        account = self.account(staker)
        if account is None or account.claimable == 0:
            return 0
        amount = account.claimable
        pay(account.staker, amount)
        account.claimable = 0
        return amount

    # ==================== Accessors ====================

    def weight_of(self, staker: str) -> int:
        account = self.account(staker)
        return account.weight if account else 0

    def claimable_of(self, staker: str) -> int:
        account = self.account(staker)
        return account.claimable if account else 0

    def last_checkpoint_of(self, staker: str) -> int:
        account = self.account(staker)
        return account.last_checkpoint if account else 0

    # ==================== Snapshot ====================

    def snapshot(self) -> Dict[str, Any]:
        return {
            key: {
                "last_checkpoint": account.last_checkpoint,
                "weight": account.weight,
                "claimable": account.claimable,
            }
            for key, account in self._accounts.items()
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self._accounts = {
            key: StakerAccount(
                staker=key,
                last_checkpoint=int(data["last_checkpoint"]),
                weight=int(data.get("weight", 0)),
                claimable=int(data.get("claimable", 0)),
            )
            for key, data in snapshot.items()
        }
