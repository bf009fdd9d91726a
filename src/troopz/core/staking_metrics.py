"""
Staking ledger instrumentation.

Prometheus metrics tracking custody flow and reward payouts, with helpers
that are safe to call from inside the gateway's critical section.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

deposit_counter = Counter(
    "troopz_staking_deposits_total", "Tokens moved into custody", ["collection"]
)

withdraw_counter = Counter(
    "troopz_staking_withdrawals_total", "Tokens released from custody", ["collection"]
)

claim_counter = Counter(
    "troopz_staking_claims_total", "Successful reward claims"
)

rewards_paid_counter = Counter(
    "troopz_staking_rewards_paid_total", "Reward asset units paid out to stakers"
)

rejected_counter = Counter(
    "troopz_staking_rejected_total", "Calls rejected with a staking error", ["code"]
)

reserve_gauge = Gauge(
    "troopz_staking_reserve_balance", "Reward asset held by the staking custody address", ["address"]
)


def record_deposit(collection: str) -> None:
    deposit_counter.labels(collection=collection).inc()


def record_withdraw(collection: str) -> None:
    withdraw_counter.labels(collection=collection).inc()


def record_claim(amount: int) -> None:
    """Count a payout; zero-amount claims are not payouts."""
    if amount <= 0:
        return
    claim_counter.inc()
    rewards_paid_counter.inc(amount)


def record_rejection(code: str) -> None:
    rejected_counter.labels(code=code).inc()


def update_reserve_balance(address: str, balance: int) -> None:
    reserve_gauge.labels(address=address).set(balance)
