"""
Troopz Staking Constants

Values that change reward arithmetic. Changing SECONDS_PER_DAY alters every
staker's accrual and must never be done on a live ledger.
"""

from typing import Final

# =============================================================================
# TIME CONSTANTS (in seconds)
# =============================================================================

SECONDS_PER_DAY: Final[int] = 86400  # 60 * 60 * 24

# =============================================================================
# ADDRESSES
# =============================================================================

ZERO_ADDRESS: Final[str] = "0x" + "0" * 40

# =============================================================================
# EVENT TYPES
# =============================================================================

EVENT_DEPOSIT: Final[str] = "Deposit"
EVENT_WITHDRAW: Final[str] = "Withdraw"
EVENT_REWARDS_UPDATED: Final[str] = "RewardsUpdated"
EVENT_REWARDS_CLAIMED: Final[str] = "RewardsClaimed"
EVENT_WHITELIST_UPDATED: Final[str] = "WhitelistUpdated"
EVENT_TOKEN_REWARD_UPDATED: Final[str] = "TokenRewardUpdated"
EVENT_RESERVE_FUNDED: Final[str] = "ReserveFunded"
EVENT_OWNERSHIP_TRANSFERRED: Final[str] = "OwnershipTransferred"

# State file format version written by StakingStateStore
STATE_FORMAT_VERSION: Final[str] = "1.0"
