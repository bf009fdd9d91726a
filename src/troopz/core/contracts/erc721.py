"""
ERC721 collectible collections.

In-memory non-fungible token satisfying the ``CollectibleCollection``
protocol, and a directory that resolves collection addresses to instances
(the ``CollectionResolver`` the staking gateway consumes).

Security features:
- Owner verification on all transfers
- Approval validation
- Zero address checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict

from ..constants import ZERO_ADDRESS
from ..staking_exceptions import TokenError
from .erc20 import derive_address

logger = logging.getLogger(__name__)


@dataclass
class NFTEvent:
    """Represents an ERC721 event."""

    event_type: str  # "Transfer", "Approval", "ApprovalForAll"
    from_address: str
    to_address: str
    token_id: int
    approved: bool = False  # For ApprovalForAll
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC721Token:
    """
    Non-fungible collectible collection.

    Tracks ownership, balances and approvals. The contract owner may mint.
    """

    name: str
    symbol: str

    address: str = ""

    # Owner (for admin functions)
    owner: str = ""

    owners: dict[int, str] = field(default_factory=dict)  # tokenId -> owner
    balances: dict[str, int] = field(default_factory=dict)  # owner -> count
    token_approvals: dict[int, str] = field(default_factory=dict)  # tokenId -> approved
    operator_approvals: dict[str, dict[str, bool]] = field(
        default_factory=dict
    )  # owner -> operator -> approved

    next_token_id: int = 1

    events: list[NFTEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address(self.name, self.symbol)
        self.address = self._normalize(self.address)
        self.owner = self._normalize(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, owner: str) -> int:
        return self.balances.get(self._normalize(owner), 0)

    def owner_of(self, token_id: int) -> str:
        """
        Get the owner of an NFT.

        Raises:
            TokenError: If token doesn't exist
        """
        owner = self.owners.get(token_id)
        if not owner:
            raise TokenError(f"ERC721: token {token_id} does not exist")
        return owner

    def get_approved(self, token_id: int) -> str:
        self.owner_of(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self.operator_approvals.get(self._normalize(owner), {}).get(
            self._normalize(operator), False
        )

    def total_supply(self) -> int:
        return len(self.owners)

    # ==================== State-Changing Functions ====================

    def approve(self, caller: str, to: str, token_id: int) -> bool:
        """
        Approve an address to transfer a specific token.

        Args:
            caller: Message sender
            to: Address to approve
            token_id: Token ID
        """
        owner = self.owner_of(token_id)
        caller_norm = self._normalize(caller)
        to_norm = self._normalize(to)

        if to_norm == owner:
            raise TokenError("ERC721: approval to current owner")

        if caller_norm != owner and not self.is_approved_for_all(owner, caller_norm):
            raise TokenError("ERC721: approve caller is not owner nor approved")

        self.token_approvals[token_id] = to_norm
        self._emit("Approval", owner, to_norm, token_id)
        return True

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> bool:
        """Set or revoke operator approval for all of ``caller``'s tokens."""
        caller_norm = self._normalize(caller)
        operator_norm = self._normalize(operator)

        if operator_norm == caller_norm:
            raise TokenError("ERC721: approve to caller")

        self.operator_approvals.setdefault(caller_norm, {})[operator_norm] = approved
        self._emit("ApprovalForAll", caller_norm, operator_norm, 0, approved=approved)
        return True

    def transfer_from(
        self, caller: str, from_addr: str, to_addr: str, token_id: int
    ) -> bool:
        """
        Transfer an NFT.

        Args:
            caller: Message sender
            from_addr: Current owner
            to_addr: New owner
            token_id: Token ID

        Raises:
            TokenError: If ownership or authorization checks fail
        """
        from_norm = self._normalize(from_addr)
        to_norm = self._normalize(to_addr)
        caller_norm = self._normalize(caller)

        owner = self.owner_of(token_id)
        if owner != from_norm:
            raise TokenError("ERC721: transfer from incorrect owner")

        if not self._is_approved_or_owner(caller_norm, token_id):
            raise TokenError("ERC721: caller is not owner nor approved")

        if to_norm == ZERO_ADDRESS:
            raise TokenError("ERC721: transfer to zero address")

        self.token_approvals.pop(token_id, None)
        self.balances[from_norm] = self.balances.get(from_norm, 1) - 1
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1
        self.owners[token_id] = to_norm

        self._emit("Transfer", from_norm, to_norm, token_id)

        logger.debug(
            "ERC721 transfer",
            extra={
                "event": "erc721.transfer",
                "collection": self.symbol,
                "token_id": token_id,
                "from": from_norm[:10],
                "to": to_norm[:10],
            },
        )
        return True

    def mint(self, minter: str, to: str, token_id: int | None = None) -> int:
        """
        Mint a new NFT (contract owner only).

        Returns:
            Minted token ID
        """
        self._require_owner(minter)

        to_norm = self._normalize(to)
        if to_norm == ZERO_ADDRESS:
            raise TokenError("ERC721: mint to zero address")

        if token_id is None:
            token_id = self.next_token_id
        elif token_id in self.owners:
            raise TokenError(f"ERC721: token {token_id} already minted")
        self.next_token_id = max(self.next_token_id, token_id + 1)

        self.owners[token_id] = to_norm
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1
        self._emit("Transfer", ZERO_ADDRESS, to_norm, token_id)

        logger.info(
            "ERC721 mint",
            extra={
                "event": "erc721.mint",
                "collection": self.symbol,
                "token_id": token_id,
                "to": to_norm[:10],
            },
        )
        return token_id

    # ==================== Helpers ====================

    def _normalize(self, address: str) -> str:
        return address.lower()

    def _require_owner(self, caller: str) -> None:
        if self._normalize(caller) != self.owner:
            raise TokenError("ERC721: caller is not owner")

    def _is_approved_or_owner(self, caller: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        return (
            caller == owner
            or self.get_approved(token_id) == caller
            or self.is_approved_for_all(owner, caller)
        )

    def _emit(
        self,
        event_type: str,
        from_addr: str,
        to_addr: str,
        token_id: int,
        approved: bool = False,
    ) -> None:
        self.events.append(
            NFTEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                token_id=token_id,
                approved=approved,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "address": self.address,
            "owner": self.owner,
            "owners": dict(self.owners),
            "balances": dict(self.balances),
            "token_approvals": dict(self.token_approvals),
            "operator_approvals": {
                k: dict(v) for k, v in self.operator_approvals.items()
            },
            "next_token_id": self.next_token_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC721Token":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        # JSON object keys are strings
        token.owners = {int(k): v for k, v in data.get("owners", {}).items()}
        token.balances = dict(data.get("balances", {}))
        token.token_approvals = {
            int(k): v for k, v in data.get("token_approvals", {}).items()
        }
        token.operator_approvals = {
            k: dict(v) for k, v in data.get("operator_approvals", {}).items()
        }
        token.next_token_id = data.get("next_token_id", 1)
        return token


class ERC721Factory:
    """Deploys collectible collections and resolves them by address."""

    def __init__(self) -> None:
        self.deployed_collections: dict[str, ERC721Token] = {}

    def create_collection(
        self,
        creator: str,
        name: str,
        symbol: str,
        address: str = "",
    ) -> ERC721Token:
        """
        Create a new NFT collection.

        Args:
            creator: Collection owner (may mint)
            name: Collection name
            symbol: Collection symbol
            address: Optional fixed address

        Returns:
            Deployed ERC721Token instance
        """
        if not name:
            raise TokenError("ERC721Factory: name cannot be empty")
        if not symbol:
            raise TokenError("ERC721Factory: symbol cannot be empty")

        collection = ERC721Token(name=name, symbol=symbol, address=address, owner=creator)
        if collection.address in self.deployed_collections:
            raise TokenError(f"ERC721Factory: {collection.address} already deployed")
        self.deployed_collections[collection.address] = collection

        logger.info(
            "ERC721 collection created",
            extra={
                "event": "erc721.created",
                "address": collection.address,
                "collection_name": name,
                "symbol": symbol,
                "creator": creator[:10],
            },
        )
        return collection

    def get_collection(self, address: str) -> ERC721Token | None:
        return self.deployed_collections.get(address.lower())

    def list_collections(self) -> list[Dict[str, Any]]:
        return [
            {
                "address": addr,
                "name": coll.name,
                "symbol": coll.symbol,
                "total_supply": coll.total_supply(),
                "owner": coll.owner,
            }
            for addr, coll in self.deployed_collections.items()
        ]
