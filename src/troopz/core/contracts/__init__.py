"""
Troopz token collaborators.

In-memory reference implementations of the tokens the staking ledger
consumes:
- ERC20: fungible reward asset
- ERC721: non-fungible collectible collections
- Factory for deploying collections and resolving them by address
"""

from .erc20 import ERC20Token
from .erc721 import ERC721Factory, ERC721Token

__all__ = [
    "ERC20Token",
    "ERC721Token",
    "ERC721Factory",
]
