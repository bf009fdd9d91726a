"""Fixtures for the staking ledger tests."""

import pytest

from staking_world import ManualClock, build_world, configure, fund


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def world(clock):
    """Deployed gateway with nothing configured."""
    return build_world(clock)


@pytest.fixture
def configured(world):
    """OG at 10/day and Second at 5/day, both whitelisted, reserve funded."""
    configure(world, world.og, 10)
    configure(world, world.second, 5)
    fund(world)
    return world
