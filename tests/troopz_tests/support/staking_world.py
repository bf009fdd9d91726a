"""
Staking world builder shared by the test suites.

``build_world`` deploys a reward asset, three collectible collections and a
gateway driven by a manual clock. OWNER holds tokens 1-5 of every
collection, OTHER holds 6-10, and both have approved the gateway.
"""

from __future__ import annotations

from types import SimpleNamespace

from troopz.core.contracts import ERC20Token, ERC721Factory
from troopz.core.staking import TroopzStaking

ADMIN = "0x" + "ad" * 20
OWNER = "0x" + "11" * 20
OTHER = "0x" + "22" * 20
STAKING_ADDRESS = "0x" + "5a" * 20

OG_ADDRESS = "0x" + "a1" * 20
SECOND_ADDRESS = "0x" + "a2" * 20
THIRD_ADDRESS = "0x" + "a3" * 20

START_TIME = 1_700_000_000
RESERVE = 1_000_000


class ManualClock:
    """Clock the tests move by hand."""

    def __init__(self, start: int = START_TIME):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def build_world(clock: ManualClock | None = None, max_batch_size: int = 0) -> SimpleNamespace:
    clock = clock or ManualClock()
    factory = ERC721Factory()
    og = factory.create_collection(ADMIN, "Troopz OG", "OG", address=OG_ADDRESS)
    second = factory.create_collection(ADMIN, "Troopz Second", "TRP2", address=SECOND_ADDRESS)
    third = factory.create_collection(ADMIN, "Troopz Third", "TRP3", address=THIRD_ADDRESS)

    asset = ERC20Token(name="Troopz Reward", symbol="TRZ", owner=ADMIN, address="0x" + "e2" * 20)
    asset.mint(ADMIN, ADMIN, RESERVE * 10)

    staking = TroopzStaking(
        asset=asset,
        anchor_collection=og.address,
        collections=factory,
        admin=ADMIN,
        address=STAKING_ADDRESS,
        clock=clock,
        max_batch_size=max_batch_size,
    )

    for collection in (og, second, third):
        for token_id in range(1, 6):
            collection.mint(ADMIN, OWNER, token_id)
        for token_id in range(6, 11):
            collection.mint(ADMIN, OTHER, token_id)
        collection.set_approval_for_all(OWNER, staking.address, True)
        collection.set_approval_for_all(OTHER, staking.address, True)

    return SimpleNamespace(
        clock=clock,
        factory=factory,
        asset=asset,
        og=og,
        second=second,
        third=third,
        staking=staking,
    )


def configure(world: SimpleNamespace, collection, rate: int, whitelisted: bool = True) -> None:
    world.staking.set_token_reward(ADMIN, collection.address, rate)
    world.staking.set_whitelisted(ADMIN, collection.address, whitelisted)


def fund(world: SimpleNamespace, amount: int = RESERVE) -> None:
    world.asset.approve(ADMIN, world.staking.address, amount)
    world.staking.fund_reserve(ADMIN, amount)
