"""
Troopz staking gateway - the public surface of the staking ledger.

Holders lock collectibles into the gateway's custody and accrue the reward
asset at each collection's daily rate. One anchor collection gates
participation: tokens from any other whitelisted collection may only be
staked while the staker has at least one anchor token in custody, and the
last anchor token cannot leave while anything else is staked.

Every public call is serialized behind one lock and is atomic. Each call
journals an undo step for every change it makes (the touched staker's
account, ledger entries, the touched collection's rate history, custody
moves) and replays them in reverse if any error escapes. Nothing the call
did not touch is read or copied.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Iterator, Sequence

from .. import config
from .. import staking_metrics as metrics
from ..constants import (
    EVENT_DEPOSIT,
    EVENT_OWNERSHIP_TRANSFERRED,
    EVENT_RESERVE_FUNDED,
    EVENT_REWARDS_CLAIMED,
    EVENT_REWARDS_UPDATED,
    EVENT_TOKEN_REWARD_UPDATED,
    EVENT_WHITELIST_UPDATED,
    EVENT_WITHDRAW,
    ZERO_ADDRESS,
)
from ..contracts.erc20 import derive_address
from ..interfaces import CollectibleCollection, CollectionResolver, FungibleAsset
from ..staking_exceptions import (
    BatchTooLargeError,
    InsufficientReserveError,
    InvalidRecipientError,
    LengthMismatchError,
    MustRetainAnchorError,
    NeedAnchorStakedError,
    NoRewardsConfiguredError,
    NothingStakedError,
    NotOwnerError,
    NotStakedError,
    NotWhitelistedError,
    StakingError,
    UnauthorizedError,
    UnknownCollectionError,
)
from .accrual_engine import AccrualEngine, RewardPreview
from .collection_registry import CollectionRegistry, RateChange
from .position_ledger import PositionLedger

logger = logging.getLogger(__name__)


@dataclass
class StakingEvent:
    """Represents a staking ledger event."""

    event_type: str
    account: str
    collection: str = ""
    token_id: int = 0
    amount: int = 0
    counterparty: str = ""
    timestamp: int = 0


@dataclass
class _CallJournal:
    """Side effects of one public call, kept for rollback and metrics."""

    undo: list[partial] = field(default_factory=list)
    # Stakers whose pre-call account is already saved in ``undo``
    accounts: set[str] = field(default_factory=set)
    releases: list[tuple[CollectibleCollection, int, str]] = field(default_factory=list)
    deposited: list[str] = field(default_factory=list)
    withdrawn: list[str] = field(default_factory=list)


class TroopzStaking:
    """
    Anchor-gated collectible staking with per-collection daily rates.

    Args:
        asset: Reward asset paid out of this gateway's own balance
        anchor_collection: Address of the collection that gates participation
        collections: Resolver from collection address to collection object
        admin: Address allowed to configure collections
        address: Custody address (derived if omitted)
        clock: Time source returning seconds; truncated to int
        max_batch_size: Maximum batch length, 0 for unlimited
    """

    def __init__(
        self,
        asset: FungibleAsset,
        anchor_collection: str,
        collections: CollectionResolver,
        admin: str,
        address: str = "",
        clock: Callable[[], float] = time.time,
        max_batch_size: int | None = None,
    ) -> None:
        self.asset = asset
        self.anchor = anchor_collection.lower()
        self.collections = collections
        self.admin = admin.lower()
        self.address = (address or derive_address("TroopzStaking", asset.address, self.anchor)).lower()
        self._clock = clock
        self.max_batch_size = config.MAX_BATCH_SIZE if max_batch_size is None else max_batch_size

        self.registry = CollectionRegistry()
        self.ledger = PositionLedger()
        self.engine = AccrualEngine(self.registry, self.ledger)

        self.events: list[StakingEvent] = []
        self._lock = threading.RLock()

        logger.info(
            "Staking gateway created",
            extra={
                "event": "staking.created",
                "address": self.address,
                "anchor": self.anchor[:10],
                "asset": asset.address[:10],
                "admin": self.admin[:10],
            },
        )

    # ==================== Administration ====================

    def set_whitelisted(self, caller: str, collection: str, whitelisted: bool) -> bool:
        with self._call() as journal:
            self._require_admin(caller)
            previous = self.registry.is_whitelisted(collection)
            self.registry.set_whitelisted(collection, whitelisted)
            journal.undo.append(partial(self.registry.set_whitelisted, collection, previous))
            self._emit(EVENT_WHITELIST_UPDATED, caller, collection=collection, amount=int(bool(whitelisted)))
            return True

    def set_token_reward(self, caller: str, collection: str, rate: int) -> RateChange:
        """
        Set a collection's daily reward per staked token, effective now.

        Stakers are not touched; the change is picked up lazily from the
        rate history at each staker's next preview or checkpoint.
        """
        with self._call() as journal:
            self._require_admin(caller)
            previous = self.registry.last_change(collection)
            change = self.registry.set_rate(collection, rate, self._now())
            journal.undo.append(partial(self.registry.revert_rate, collection, previous))
            self._emit(EVENT_TOKEN_REWARD_UPDATED, caller, collection=collection, amount=rate)
            return change

    def transfer_ownership(self, caller: str, new_admin: str) -> bool:
        with self._call() as journal:
            self._require_admin(caller)
            if not new_admin or new_admin.lower() == ZERO_ADDRESS:
                raise InvalidRecipientError("new admin is the zero address")
            previous, self.admin = self.admin, new_admin.lower()
            journal.undo.append(partial(setattr, self, "admin", previous))
            self._emit(EVENT_OWNERSHIP_TRANSFERRED, previous, counterparty=self.admin)
            return True

    def fund_reserve(self, caller: str, amount: int) -> int:
        """Pull ``amount`` of the reward asset from ``caller`` (needs allowance)."""
        with self._call():
            self.asset.transfer_from(self.address, caller, self.address, amount)
            self._emit(EVENT_RESERVE_FUNDED, caller, amount=amount)
            balance = self.reserve_balance()
            metrics.update_reserve_balance(self.address, balance)
            return balance

    # ==================== Deposits ====================

    def deposit(self, caller: str, staker: str, collection: str, token_id: int) -> int:
        """
        Stake one token for ``staker``, pulled from ``caller``.

        Returns:
            The staker's cached weight after the deposit
        """
        return self.batch_deposit(caller, staker, [collection], [token_id])

    def batch_deposit(
        self,
        caller: str,
        staker: str,
        collections: Sequence[str],
        token_ids: Sequence[int],
    ) -> int:
        """
        Stake several tokens left to right, each validated against the
        ledger as left by the elements before it. All or nothing.
        """
        with self._call() as journal:
            self._check_batch(collections, token_ids)
            now = self._now()
            for collection, token_id in zip(collections, token_ids):
                self._deposit_one(journal, caller, staker, collection, token_id, now)
            return self.engine.weight_of(staker)

    def _deposit_one(
        self,
        journal: _CallJournal,
        caller: str,
        staker: str,
        collection: str,
        token_id: int,
        now: int,
    ) -> None:
        collection = collection.lower()

        if collection != self.anchor and self.ledger.count_of(staker, self.anchor) == 0:
            raise NeedAnchorStakedError(
                details={"staker": staker.lower(), "collection": collection}
            )
        if not self.registry.has_rate(collection) or self.registry.current_rate(collection, now) == 0:
            raise NoRewardsConfiguredError(details={"collection": collection})
        if not self.registry.is_whitelisted(collection):
            raise NotWhitelistedError(details={"collection": collection})

        token = self._resolve(collection)

        self._save_account(journal, staker)
        self.engine.checkpoint(staker, now)
        self.ledger.add(staker, collection, token_id)
        journal.undo.append(partial(self.ledger.remove, staker, collection, token_id))
        token.transfer_from(self.address, caller, self.address, token_id)
        journal.undo.append(partial(token.transfer_from, self.address, self.address, caller.lower(), token_id))
        journal.deposited.append(collection)
        weight = self.engine.nudge_weight(staker, self.registry.current_rate(collection, now), now)

        self._emit(EVENT_DEPOSIT, staker, collection=collection, token_id=token_id, counterparty=caller)
        logger.info(
            "Token staked",
            extra={
                "event": "staking.deposit",
                "staker": staker.lower()[:10],
                "collection": collection[:10],
                "token_id": token_id,
                "weight": weight,
            },
        )

    # ==================== Withdrawals ====================

    def withdraw(self, caller: str, staker: str, to: str, collection: str, token_id: int) -> int:
        """
        Release one of ``staker``'s tokens to ``to``.

        Returns:
            The staker's cached weight after the withdrawal
        """
        return self.batch_withdraw(caller, staker, to, [collection], [token_id])

    def batch_withdraw(
        self,
        caller: str,
        staker: str,
        to: str,
        collections: Sequence[str],
        token_ids: Sequence[int],
    ) -> int:
        with self._call() as journal:
            self._check_batch(collections, token_ids)
            now = self._now()
            for collection, token_id in zip(collections, token_ids):
                self._withdraw_one(journal, caller, staker, to, collection, token_id, now)
            # Releases go last; one that already left is only pulled back if
            # the recipient lets this gateway move it
            for token, token_id, recipient in journal.releases:
                token.transfer_from(self.address, self.address, recipient, token_id)
                journal.undo.append(partial(token.transfer_from, self.address, recipient, self.address, token_id))
            return self.engine.weight_of(staker)

    def _withdraw_one(
        self,
        journal: _CallJournal,
        caller: str,
        staker: str,
        to: str,
        collection: str,
        token_id: int,
        now: int,
    ) -> None:
        collection = collection.lower()
        staker_norm = staker.lower()

        if caller.lower() != staker_norm:
            raise NotOwnerError(details={"caller": caller.lower(), "staker": staker_norm})
        if not to or to.lower() == ZERO_ADDRESS:
            raise InvalidRecipientError("cannot withdraw to the zero address")
        count = self.ledger.count_of(staker, collection)
        if count == 0:
            raise NothingStakedError(details={"staker": staker_norm, "collection": collection})
        if self.ledger.holder_of(collection, token_id) != staker_norm:
            raise NotStakedError(
                details={"staker": staker_norm, "collection": collection, "token_id": token_id}
            )
        if collection == self.anchor and count == 1 and self.ledger.has_other_than(staker, self.anchor):
            raise MustRetainAnchorError(details={"staker": staker_norm})

        token = self._resolve(collection)
        if token.owner_of(token_id).lower() != self.address:
            raise NotStakedError(
                f"token {token_id} of {collection} is not in custody",
                details={"collection": collection, "token_id": token_id},
            )

        self._save_account(journal, staker)
        self.engine.checkpoint(staker, now)
        self.ledger.remove(staker, collection, token_id)
        journal.undo.append(partial(self.ledger.add, staker, collection, token_id))
        weight = self.engine.nudge_weight(staker, -self.registry.current_rate(collection, now), now)
        journal.releases.append((token, token_id, to.lower()))
        journal.withdrawn.append(collection)

        self._emit(EVENT_WITHDRAW, staker, collection=collection, token_id=token_id, counterparty=to)
        logger.info(
            "Token unstaked",
            extra={
                "event": "staking.withdraw",
                "staker": staker_norm[:10],
                "collection": collection[:10],
                "token_id": token_id,
                "to": to.lower()[:10],
                "weight": weight,
            },
        )

    # ==================== Rewards ====================

    def preview_deposit(self, collection: str) -> int:
        """Weight a deposit into ``collection`` would add right now."""
        with self._lock:
            return self.registry.current_rate(collection, self._now())

    def preview_rewards(self, staker: str) -> RewardPreview:
        """(pending reward, last checkpoint, authoritative weight); read-only."""
        with self._lock:
            return self.engine.preview_accrued(staker, self._now())

    def update_rewards(self, staker: str) -> int:
        """Checkpoint ``staker``; returns the reward settled into claimable."""
        with self._call() as journal:
            self._save_account(journal, staker)
            settled = self.engine.checkpoint(staker, self._now())
            self._emit(EVENT_REWARDS_UPDATED, staker, amount=settled)
            return settled

    def claim_rewards(self, staker: str) -> int:
        """Pay out ``staker``'s settled claimable balance; does not checkpoint."""
        with self._call() as journal:
            self._save_account(journal, staker)
            return self._claim(staker)

    def update_rewards_and_claim(self, staker: str) -> int:
        with self._call() as journal:
            self._save_account(journal, staker)
            settled = self.engine.checkpoint(staker, self._now())
            self._emit(EVENT_REWARDS_UPDATED, staker, amount=settled)
            return self._claim(staker)

    def _claim(self, staker: str) -> int:
        paid = self.engine.claim(staker, self._pay)
        if paid:
            self._emit(EVENT_REWARDS_CLAIMED, staker, amount=paid)
            metrics.record_claim(paid)
            metrics.update_reserve_balance(self.address, self.reserve_balance())
            logger.info(
                "Rewards claimed",
                extra={"event": "staking.claim", "staker": staker.lower()[:10], "amount": paid},
            )
        return paid

    def _pay(self, staker: str, amount: int) -> None:
        reserve = self.reserve_balance()
        if reserve < amount:
            raise InsufficientReserveError(
                f"reserve {reserve} cannot cover claim of {amount}",
                details={"reserve": reserve, "amount": amount, "staker": staker},
            )
        self.asset.transfer(self.address, staker, amount)

    # ==================== Views ====================

    def balance_of(self, staker: str) -> int:
        """Cached weight: reward units per day at the last nudge or checkpoint."""
        with self._lock:
            return self.engine.weight_of(staker)

    def owner_rewards(self, staker: str) -> int:
        with self._lock:
            return self.engine.claimable_of(staker)

    def last_checkpoint(self, staker: str) -> int:
        with self._lock:
            return self.engine.last_checkpoint_of(staker)

    def whitelisted(self, collection: str) -> bool:
        with self._lock:
            return self.registry.is_whitelisted(collection)

    def token_reward(self, collection: str) -> int:
        """Rate in force now, 0 for a collection never configured."""
        with self._lock:
            if not self.registry.has_rate(collection):
                return 0
            return self.registry.current_rate(collection, self._now())

    def rate_history(self, collection: str) -> list[RateChange]:
        with self._lock:
            return self.registry.rate_history(collection)

    def count_of(self, staker: str, collection: str) -> int:
        with self._lock:
            return self.ledger.count_of(staker, collection)

    def staked_tokens(self, staker: str, collection: str) -> list[int]:
        with self._lock:
            return self.ledger.token_ids(staker, collection)

    def staked_owner(self, collection: str, token_id: int) -> str | None:
        with self._lock:
            return self.ledger.holder_of(collection, token_id)

    def has_anchor(self, staker: str) -> bool:
        with self._lock:
            return self.ledger.count_of(staker, self.anchor) > 0

    def asset_address(self) -> str:
        return self.asset.address

    def required_address(self) -> str:
        return self.anchor

    def reserve_balance(self) -> int:
        return self.asset.balance_of(self.address)

    # ==================== Snapshot ====================

    def snapshot(self) -> Dict[str, Any]:
        """Complete ledger state as plain JSON-compatible data."""
        with self._lock:
            return {
                "address": self.address,
                "admin": self.admin,
                "anchor": self.anchor,
                "asset": self.asset.address,
                "registry": self.registry.snapshot(),
                "ledger": self.ledger.snapshot(),
                "accounts": self.engine.snapshot(),
            }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """
        Restore ledger state from ``snapshot()`` output.

        Custody itself lives in the collection contracts; restoring only
        rewrites this gateway's view of it.
        """
        with self._lock:
            if snapshot.get("anchor", self.anchor) != self.anchor:
                raise StakingError(
                    "snapshot belongs to a different anchor collection",
                    details={"expected": self.anchor, "found": snapshot.get("anchor")},
                )
            self.admin = snapshot.get("admin", self.admin)
            self.registry.restore(snapshot.get("registry", {}))
            self.ledger.restore(snapshot.get("ledger", {}))
            self.engine.restore(snapshot.get("accounts", {}))

    # ==================== Helpers ====================

    def _now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _call(self) -> Iterator[_CallJournal]:
        """Serialize a state-changing call and roll it back if it fails."""
        with self._lock:
            journal = _CallJournal()
            events_mark = len(self.events)
            try:
                yield journal
            except Exception as exc:
                self._rollback(journal)
                del self.events[events_mark:]
                if isinstance(exc, StakingError):
                    metrics.record_rejection(exc.code)
                    logger.warning(
                        "Staking call rejected: %s",
                        exc.code,
                        extra={"event": "staking.rejected", "code": exc.code, "details": exc.details},
                    )
                raise
            for collection in journal.deposited:
                metrics.record_deposit(collection)
            for collection in journal.withdrawn:
                metrics.record_withdraw(collection)

    def _rollback(self, journal: _CallJournal) -> None:
        """Replay the call's undo steps newest first.

        A step that fails is logged and skipped so the rest still run; the
        call's own error is what propagates.
        """
        for step in reversed(journal.undo):
            try:
                step()
            except Exception:
                logger.error(
                    "Rollback step failed; ledger and custody may disagree",
                    exc_info=True,
                    extra={"event": "staking.rollback_failed", "step": step.func.__name__},
                )

    def _save_account(self, journal: _CallJournal, staker: str) -> None:
        """Journal ``staker``'s account as it was before this call touched it."""
        key = staker.lower()
        if key in journal.accounts:
            return
        journal.accounts.add(key)
        journal.undo.append(partial(self.engine.reset_account, key, self.engine.account_state(key)))

    def _check_batch(self, collections: Sequence[str], token_ids: Sequence[int]) -> None:
        if len(collections) != len(token_ids):
            raise LengthMismatchError(
                details={"collections": len(collections), "token_ids": len(token_ids)}
            )
        if self.max_batch_size and len(collections) > self.max_batch_size:
            raise BatchTooLargeError(
                details={"size": len(collections), "max": self.max_batch_size}
            )

    def _resolve(self, collection: str) -> CollectibleCollection:
        token = self.collections.get_collection(collection)
        if token is None:
            raise UnknownCollectionError(
                f"collection {collection} cannot be resolved",
                details={"collection": collection},
            )
        return token

    def _require_admin(self, caller: str) -> None:
        if caller.lower() != self.admin:
            raise UnauthorizedError(details={"caller": caller.lower()})

    def _emit(
        self,
        event_type: str,
        account: str,
        collection: str = "",
        token_id: int = 0,
        amount: int = 0,
        counterparty: str = "",
    ) -> None:
        self.events.append(
            StakingEvent(
                event_type=event_type,
                account=account.lower(),
                collection=collection.lower(),
                token_id=token_id,
                amount=amount,
                counterparty=counterparty.lower(),
                timestamp=self._now(),
            )
        )
