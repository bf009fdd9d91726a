"""
Staking exception hierarchy for Troopz.

Every error is a precondition violation raised synchronously to the caller.
None of them is transient, so ``recoverable`` defaults to False everywhere
except InsufficientReserveError, which clears once the reserve is refilled.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StakingError(Exception):
    """Base exception for all staking ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the same call can succeed later unchanged
        code: Stable machine-readable reason, matching the contract revert string
    """

    code = "STAKING_ERROR"
    recoverable = False

    def __init__(
        self,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        message = message or self.code
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Deposit Gating ====================


class NeedAnchorStakedError(StakingError):
    """Raised when depositing a non-anchor token without an anchor token staked."""
    code = "NEED_OG_STAKED"


class NoRewardsConfiguredError(StakingError):
    """Raised when depositing into a collection whose current rate is zero or unset."""
    code = "NO_REWARDS"


class NotWhitelistedError(StakingError):
    """Raised when depositing into a collection that is not whitelisted."""
    code = "NOT_WHITELISTED"


# ==================== Withdrawal Gating ====================


class NotOwnerError(StakingError):
    """Raised when the caller is not the staker whose position is being withdrawn."""
    code = "NOT_OWNER"


class NothingStakedError(StakingError):
    """Raised when withdrawing from a collection the staker has nothing staked in."""
    code = "NOTHING_STAKED"


class MustRetainAnchorError(StakingError):
    """Raised when withdrawing the last anchor token while other positions remain."""
    code = "MUST_HAVE_OG_STAKED"


class InvalidRecipientError(StakingError):
    """Raised when withdrawing to the zero address."""
    code = "INVALID_RECIPIENT"


# ==================== Ledger Errors ====================


class AlreadyStakedError(StakingError):
    """Raised when a token id is already held in custody for its collection."""
    code = "ALREADY_STAKED"


class NotStakedError(NotOwnerError):
    """Raised when a token id is not part of the staker's position.

    Subclasses NotOwnerError: a token missing from the staker's position is
    one the staker does not own in custody.
    """
    code = "NOT_STAKED"


class UnknownCollectionError(StakingError):
    """Raised when a collection has never had a reward rate configured."""
    code = "UNKNOWN_COLLECTION"


# ==================== Batch Errors ====================


class LengthMismatchError(StakingError):
    """Raised when batch collection and token id sequences differ in length."""
    code = "LENGTH_MISMATCH"


class BatchTooLargeError(StakingError):
    """Raised when a batch exceeds the configured maximum size."""
    code = "BATCH_TOO_LARGE"


# ==================== Administration ====================


class UnauthorizedError(StakingError):
    """Raised when a non-admin caller invokes an administrative function."""
    code = "UNAUTHORIZED"


class InvalidRateError(StakingError):
    """Raised when a reward rate is negative or not an integer."""
    code = "INVALID_RATE"


# ==================== Rewards ====================


class InsufficientReserveError(StakingError):
    """Raised when the reward reserve cannot cover a claim."""
    code = "INSUFFICIENT_RESERVE"
    recoverable = True  # Succeeds once the reserve is refilled


# ==================== Collaborators & Storage ====================


class TokenError(StakingError):
    """Raised by the reference ERC20/ERC721 collaborators."""
    code = "TOKEN_ERROR"


class CorruptedStateError(StakingError):
    """Raised when persisted staking state fails integrity checks."""
    code = "CORRUPTED_STATE"


# ==================== Configuration ====================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


__all__ = [
    "StakingError",
    "ConfigurationError",
    "NeedAnchorStakedError",
    "NoRewardsConfiguredError",
    "NotWhitelistedError",
    "NotOwnerError",
    "NothingStakedError",
    "MustRetainAnchorError",
    "InvalidRecipientError",
    "AlreadyStakedError",
    "NotStakedError",
    "UnknownCollectionError",
    "LengthMismatchError",
    "BatchTooLargeError",
    "UnauthorizedError",
    "InvalidRateError",
    "InsufficientReserveError",
    "TokenError",
    "CorruptedStateError",
]
