"""
Troopz staking ledger.

- CollectionRegistry: whitelist flags and append-only rate history
- PositionLedger: which token ids each staker holds in custody
- AccrualEngine: lazy, day-truncated reward integration per staker
- TroopzStaking: the gateway orchestrating all three
"""

from .accrual_engine import AccrualEngine, RewardPreview, StakerAccount
from .collection_registry import CollectionConfig, CollectionRegistry, RateChange
from .position_ledger import Position, PositionLedger
from .staking_gateway import StakingEvent, TroopzStaking

__all__ = [
    "AccrualEngine",
    "RewardPreview",
    "StakerAccount",
    "CollectionConfig",
    "CollectionRegistry",
    "RateChange",
    "Position",
    "PositionLedger",
    "StakingEvent",
    "TroopzStaking",
]
