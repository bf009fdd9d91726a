"""
Collaborator Protocol Interfaces - what the staking ledger needs from tokens.

The ledger never depends on a concrete token implementation. It consumes:
- a fungible reward asset (balances, transfers, allowance pulls)
- collectible collections (ownership lookups and transfers)
- a resolver mapping collection addresses to collection objects

Any object structurally matching these protocols can be plugged in; the
reference in-memory tokens in ``troopz.core.contracts`` are one such set.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class FungibleAsset(Protocol):
    """Protocol for the reward asset paid out to stakers."""

    address: str

    def balance_of(self, account: str) -> int:
        """Get the asset balance of an account."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient``; raises on failure."""
        ...

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """Move ``amount`` out of ``from_addr`` using ``spender``'s allowance."""
        ...


@runtime_checkable
class CollectibleCollection(Protocol):
    """Protocol for a non-fungible token collection."""

    address: str

    def owner_of(self, token_id: int) -> str:
        """Get the current owner of a token; raises if it does not exist."""
        ...

    def transfer_from(
        self, caller: str, from_addr: str, to_addr: str, token_id: int
    ) -> bool:
        """Transfer a token; ``caller`` must be owner or approved."""
        ...


@runtime_checkable
class CollectionResolver(Protocol):
    """Protocol for looking up collections by address."""

    def get_collection(self, address: str) -> CollectibleCollection | None:
        """Get a collection by address, or None if unknown."""
        ...
