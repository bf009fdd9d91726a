"""
Property-based tests for staking ledger invariants.

- Only whole days accrue, at exactly weight per day
- Checkpoint frequency never changes what a staker earns at constant rates
- No staker ever holds non-anchor tokens without an anchor token
- Custody in the collections always matches the ledger's view
- A checkpoint resyncs the cached weight to the rates in force

Uses Hypothesis; every example builds its own world so no state leaks.
"""

from hypothesis import Phase, given, settings, strategies as st

from staking_world import ADMIN, OWNER, STAKING_ADDRESS, build_world, configure, fund
from troopz.core.constants import SECONDS_PER_DAY as DAY
from troopz.core.staking_exceptions import StakingError

TOKEN_IDS = (1, 2, 3)


class TestAccrualProperties:
    @given(
        rate=st.integers(min_value=1, max_value=10_000),
        count=st.integers(min_value=1, max_value=5),
        days=st.integers(min_value=0, max_value=400),
        remainder=st.integers(min_value=0, max_value=DAY - 1),
    )
    @settings(max_examples=75, deadline=None, phases=[Phase.generate, Phase.target])
    def test_only_whole_days_accrue(self, rate, count, days, remainder):
        world = build_world()
        configure(world, world.og, rate)
        staking = world.staking
        staking.batch_deposit(OWNER, OWNER, [world.og.address] * count, list(range(1, count + 1)))
        start = world.clock.now

        world.clock.advance(days * DAY + remainder)
        assert staking.preview_rewards(OWNER).pending == rate * count * days

        staking.update_rewards(OWNER)
        assert staking.owner_rewards(OWNER) == rate * count * days
        assert staking.last_checkpoint(OWNER) == start + days * DAY

        # The partial day is carried, not lost
        world.clock.advance(DAY - remainder)
        assert staking.preview_rewards(OWNER).pending == rate * count

    @given(
        steps=st.lists(st.integers(min_value=1, max_value=3 * DAY), min_size=1, max_size=12),
        checkpoint_mask=st.lists(st.booleans(), min_size=12, max_size=12),
    )
    @settings(max_examples=60, deadline=None, phases=[Phase.generate, Phase.target])
    def test_checkpoint_frequency_is_irrelevant_at_constant_rates(self, steps, checkpoint_mask):
        world = build_world()
        configure(world, world.og, 7)
        configure(world, world.second, 3)
        staking = world.staking
        staking.batch_deposit(
            OWNER, OWNER, [world.og.address, world.second.address, world.second.address], [1, 1, 2]
        )
        start = world.clock.now

        for step, checkpoint in zip(steps, checkpoint_mask):
            world.clock.advance(step)
            if checkpoint:
                staking.update_rewards(OWNER)

        earned = staking.owner_rewards(OWNER) + staking.preview_rewards(OWNER).pending
        assert earned == 13 * ((world.clock.now - start) // DAY)

    @given(
        changes=st.lists(
            st.tuples(
                st.sampled_from(["og", "second"]),
                st.integers(min_value=0, max_value=500),
                st.integers(min_value=1, max_value=2 * DAY),
            ),
            min_size=1,
            max_size=8,
        )
    )
    @settings(max_examples=60, deadline=None, phases=[Phase.generate, Phase.target])
    def test_checkpoint_resyncs_cached_weight(self, changes):
        world = build_world()
        configure(world, world.og, 10)
        configure(world, world.second, 5)
        staking = world.staking
        staking.batch_deposit(
            OWNER, OWNER, [world.og.address, world.og.address, world.second.address], [1, 2, 1]
        )

        for name, rate, wait in changes:
            world.clock.advance(wait)
            staking.set_token_reward(ADMIN, getattr(world, name).address, rate)

        staking.update_rewards(OWNER)
        expected = 2 * staking.token_reward(world.og.address) + staking.token_reward(world.second.address)
        assert staking.balance_of(OWNER) == expected
        assert staking.preview_rewards(OWNER).weight == expected


operations = st.lists(
    st.tuples(
        st.sampled_from(["deposit", "withdraw", "batch_withdraw"]),
        st.sampled_from(["og", "second"]),
        st.sampled_from(TOKEN_IDS),
        st.integers(min_value=0, max_value=DAY),
    ),
    min_size=1,
    max_size=25,
)


class TestCustodyInvariants:
    @given(ops=operations)
    @settings(max_examples=60, deadline=None, phases=[Phase.generate, Phase.target])
    def test_anchor_and_custody_hold_after_every_call(self, ops):
        world = build_world()
        configure(world, world.og, 10)
        configure(world, world.second, 5)
        fund(world)
        staking = world.staking
        collections = {"og": world.og, "second": world.second}

        for kind, name, token_id, wait in ops:
            world.clock.advance(wait)
            collection = collections[name]
            try:
                if kind == "deposit":
                    staking.deposit(OWNER, OWNER, collection.address, token_id)
                elif kind == "withdraw":
                    staking.withdraw(OWNER, OWNER, OWNER, collection.address, token_id)
                else:
                    # Withdraw everything staked in the collection at once
                    ids = staking.staked_tokens(OWNER, collection.address)
                    staking.batch_withdraw(OWNER, OWNER, OWNER, [collection.address] * len(ids), ids)
            except StakingError:
                pass

            og_count = staking.count_of(OWNER, world.og.address)
            second_count = staking.count_of(OWNER, world.second.address)
            if second_count > 0:
                assert og_count > 0
            assert staking.balance_of(OWNER) == 10 * og_count + 5 * second_count

            for coll in collections.values():
                for tid in TOKEN_IDS:
                    in_custody = coll.owner_of(tid) == STAKING_ADDRESS
                    assert in_custody == (staking.staked_owner(coll.address, tid) == OWNER)
                assert staking.count_of(OWNER, coll.address) == len(staking.staked_tokens(OWNER, coll.address))
