"""
Troopz collectible staking.

Lock non-fungible collectibles into custody and accrue a fungible reward
asset at per-collection daily rates.
"""

__version__ = "0.1.0"
