"""
ERC20 reward asset.

Minimal in-memory fungible token satisfying ``FungibleAsset``: balances,
transfers, allowance pulls for reserve funding and owner minting. The
staking gateway pays rewards out of its own balance in this asset.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass, field

from ..constants import ZERO_ADDRESS
from ..staking_exceptions import TokenError

logger = logging.getLogger(__name__)

_deploy_nonce = itertools.count(1)


def derive_address(*parts: object) -> str:
    """Derive a 20-byte hex address from deployment parameters."""
    seed = "".join(str(part) for part in parts) + str(next(_deploy_nonce))
    digest = hashlib.sha3_256(seed.encode()).digest()
    return f"0x{digest[-20:].hex()}"


@dataclass
class ERC20Token:
    """Reward asset ledger keyed by lowercase address."""

    name: str
    symbol: str
    address: str = ""
    # May mint
    owner: str = ""
    total_supply: int = 0
    balances: dict[str, int] = field(default_factory=dict)
    # owner -> spender -> remaining allowance
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.address = (self.address or derive_address(self.name, self.symbol)).lower()
        self.owner = self.owner.lower()

    def balance_of(self, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner.lower(), {}).get(spender.lower(), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TokenError: On a zero recipient, a negative amount or a short balance
        """
        self._move(sender.lower(), recipient.lower(), amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Let ``spender`` pull up to ``amount`` of ``owner``'s balance."""
        if amount < 0:
            raise TokenError("ERC20: amount cannot be negative")
        self.allowances.setdefault(owner.lower(), {})[spender.lower()] = amount
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """Move ``amount`` out of ``from_addr``, spending ``spender``'s allowance."""
        remaining = self.allowance(from_addr, spender)
        if remaining < amount:
            raise TokenError(f"ERC20: insufficient allowance ({remaining} < {amount})")
        self._move(from_addr.lower(), to_addr.lower(), amount)
        self.allowances.setdefault(from_addr.lower(), {})[spender.lower()] = remaining - amount
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create ``amount`` new units for ``to`` (owner only)."""
        if minter.lower() != self.owner:
            raise TokenError("ERC20: caller is not owner")
        self._check(to.lower(), amount)
        self.total_supply += amount
        self.balances[to.lower()] = self.balance_of(to) + amount
        logger.info(
            "ERC20 mint",
            extra={"event": "erc20.mint", "token": self.symbol, "to": to.lower()[:10], "amount": amount},
        )
        return True

    def _check(self, recipient: str, amount: int) -> None:
        if not recipient or recipient == ZERO_ADDRESS:
            raise TokenError("ERC20: recipient is zero address")
        if amount < 0:
            raise TokenError("ERC20: amount cannot be negative")

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        self._check(recipient, amount)
        available = self.balances.get(sender, 0)
        if available < amount:
            raise TokenError(f"ERC20: transfer amount exceeds balance ({amount} > {available})")
        self.balances[sender] = available - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        logger.debug(
            "ERC20 transfer",
            extra={"event": "erc20.transfer", "token": self.symbol, "from": sender[:10], "to": recipient[:10], "amount": amount},
        )
