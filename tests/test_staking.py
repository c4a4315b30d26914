"""Tests for the bonding state machine and user operations.

Covers stake validation, unbond / cancel / unstake transitions, batch
variants, claims, atomic rollback and the re-entrancy guard.
"""

import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import ADMIN, ONE_DAY, PERIOD, REWARDS, UNIT, make_env

from bondledger.engine.assets import InMemoryToken
from bondledger.engine.errors import (
    AccountingInvariantError,
    AlreadyUnbondingError,
    DepositTooSmallError,
    InputError,
    InvalidLockError,
    NoRewardsLeftError,
    NotUnbondingError,
    PositionClosedError,
    ReentrancyError,
    RewardsNotFundedError,
    StillLockedError,
    TransferError,
    UnknownPositionError,
    ZeroAmountError,
)
from bondledger.engine.events import Claimed, Staked, UnbondCancelled, UnbondStarted, Unstaked
from bondledger.engine.positions import BondState


class TestStake:
    """Opening positions."""

    def test_requires_funded_rewards(self, env):
        with pytest.raises(RewardsNotFundedError):
            env.program.stake("alice", 100 * UNIT, 0)

    def test_rejects_zero_amount(self, funded):
        with pytest.raises(ZeroAmountError):
            funded.program.stake("alice", 0, 0)

    def test_rejects_under_minimum(self, funded):
        funded.program.set_minimum_deposit(ADMIN, 10 * UNIT)
        with pytest.raises(DepositTooSmallError) as exc_info:
            funded.program.stake("alice", 5 * UNIT, 0)
        assert exc_info.value.amount == 5 * UNIT
        assert exc_info.value.minimum == 10 * UNIT

    @pytest.mark.parametrize("lock", [3, -1, "month", True, None])
    def test_rejects_invalid_lock(self, funded, lock):
        with pytest.raises(InvalidLockError):
            funded.program.stake("alice", UNIT, lock)

    def test_rejects_after_period_end(self, funded):
        funded.advance(PERIOD + 1)
        with pytest.raises(NoRewardsLeftError):
            funded.program.stake("alice", UNIT, 0)

    def test_allowed_exactly_at_period_end(self, funded):
        funded.advance(PERIOD)
        assert funded.program.stake("alice", UNIT, 0) == 0

    def test_position_ids_increase_per_depositor(self, funded):
        p = funded.program
        assert p.stake("alice", UNIT, 0) == 0
        assert p.stake("alice", UNIT, 1) == 1
        assert p.stake("bob", UNIT, 2) == 0
        assert p.stake("alice", UNIT, "two_weeks") == 2

    def test_pulls_principal(self, funded):
        before = funded.stake_token.balance_of("alice")
        funded.program.stake("alice", 100 * UNIT, 0)
        assert funded.stake_token.balance_of("alice") == before - 100 * UNIT
        assert funded.stake_token.balance_of(funded.program.address) == 100 * UNIT

    @pytest.mark.parametrize("lock,boosted", [
        (0, 110 * UNIT),
        (1, 140 * UNIT),
        (2, 200 * UNIT),
    ])
    def test_boost_applied(self, funded, lock, boosted):
        p = funded.program
        p.stake("alice", 100 * UNIT, lock)
        position = p.position("alice", 0)
        assert position.principal == 100 * UNIT
        assert position.boosted_principal == boosted
        assert p.state.total_principal == 100 * UNIT
        assert p.state.total_boosted_principal == boosted

    def test_boost_rounds_down(self, funded):
        funded.program.stake("alice", 333, "week")
        assert funded.program.position("alice", 0).boosted_principal == 466

    def test_emits_staked_event(self, funded):
        funded.program.stake("alice", 100 * UNIT, 1)
        event = funded.program.events.of_type(Staked)[-1]
        assert event.depositor == "alice"
        assert event.position_id == 0
        assert event.amount == 100 * UNIT
        assert event.boosted_amount == 140 * UNIT
        assert event.lock == "week"


class TestUnbond:
    """Unbonding strips the boost and starts the cooldown."""

    def test_unbond_strips_boost(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 2)
        ready_at = p.unbond("alice", 0)
        assert ready_at == funded.clock.now() + 14 * ONE_DAY
        assert p.position("alice", 0).boosted_principal == 100 * UNIT
        assert p.state.total_boosted_principal == 100 * UNIT
        assert p.state.total_principal == 100 * UNIT
        assert p.position_state("alice", 0) is BondState.UNBONDING

    def test_unbond_only_strips_own_boost(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 2)
        p.stake("bob", 100 * UNIT, 1)
        p.unbond("alice", 0)
        assert p.state.total_boosted_principal == 100 * UNIT + 140 * UNIT

    def test_cannot_unbond_twice(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        p.unbond("alice", 0)
        with pytest.raises(AlreadyUnbondingError):
            p.unbond("alice", 0)

    def test_unknown_position(self, funded):
        with pytest.raises(UnknownPositionError):
            funded.program.unbond("alice", 0)

    def test_cooldown_follows_lock_tier(self, funded):
        p = funded.program
        for lock in range(3):
            p.stake("alice", UNIT, lock)
        now = funded.clock.now()
        assert p.unbond("alice", 0) == now + ONE_DAY
        assert p.unbond("alice", 1) == now + 7 * ONE_DAY
        assert p.unbond("alice", 2) == now + 14 * ONE_DAY

    def test_emits_event(self, funded):
        funded.program.stake("alice", UNIT, 0)
        ready_at = funded.program.unbond("alice", 0)
        event = funded.program.events.of_type(UnbondStarted)[-1]
        assert event.ready_at == ready_at


class TestCancelUnbonding:
    """Cancelling restores the boost exactly."""

    def test_cancel_restores_boost(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 1)
        p.unbond("alice", 0)
        funded.advance(ONE_DAY)
        p.cancel_unbonding("alice", 0)
        position = p.position("alice", 0)
        assert position.boosted_principal == 140 * UNIT
        assert position.unbond_ready_at == 0
        assert p.state.total_boosted_principal == 140 * UNIT
        assert p.position_state("alice", 0) is BondState.ACTIVE_LOCKED
        assert len(p.events.of_type(UnbondCancelled)) == 1

    def test_cancel_requires_unbonding(self, funded):
        funded.program.stake("alice", UNIT, 0)
        with pytest.raises(NotUnbondingError):
            funded.program.cancel_unbonding("alice", 0)

    def test_cancel_allowed_once_withdrawable(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        p.unbond("alice", 0)
        funded.advance(2 * ONE_DAY)
        assert p.position_state("alice", 0) is BondState.WITHDRAWABLE
        p.cancel_unbonding("alice", 0)
        assert p.position_state("alice", 0) is BondState.ACTIVE_LOCKED

    def test_unbond_again_recomputes_cooldown(self, funded):
        p = funded.program
        p.stake("alice", UNIT, 1)
        p.unbond("alice", 0)
        p.cancel_unbonding("alice", 0)
        funded.advance(3 * ONE_DAY)
        assert p.unbond("alice", 0) == funded.clock.now() + 7 * ONE_DAY


class TestUnstake:
    """Unstaking closes a withdrawable position."""

    def test_locked_position_rejected(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        balance = funded.stake_token.balance_of("alice")
        with pytest.raises(StillLockedError) as exc_info:
            p.unstake("alice", 0)
        assert exc_info.value.ready_at is None
        assert funded.stake_token.balance_of("alice") == balance
        assert funded.reward_token.balance_of("alice") == 0

    def test_cooldown_must_elapse(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 1)
        ready_at = p.unbond("alice", 0)
        funded.advance(7 * ONE_DAY - 1)
        with pytest.raises(StillLockedError) as exc_info:
            p.unstake("alice", 0)
        assert exc_info.value.ready_at == ready_at
        funded.advance(1)
        p.unstake("alice", 0)

    def test_returns_principal_and_reward(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        p.unbond("alice", 0)
        funded.advance(ONE_DAY)
        expected_reward = p.earned("alice", 0)
        before = funded.stake_token.balance_of("alice")

        reward = p.unstake("alice", 0)

        assert reward == expected_reward
        assert reward > 0
        assert funded.stake_token.balance_of("alice") == before + 100 * UNIT
        assert funded.reward_token.balance_of("alice") == reward
        position = p.position("alice", 0)
        assert position.principal == 0
        assert position.boosted_principal == 0
        assert position.unclaimed_reward == 0
        assert p.position_state("alice", 0) is BondState.CLOSED
        assert p.state.total_principal == 0
        assert p.state.total_boosted_principal == 0
        event = p.events.of_type(Unstaked)[-1]
        assert (event.principal, event.reward) == (100 * UNIT, reward)

    def test_closed_position_rejects_everything(self, funded):
        p = funded.program
        p.stake("alice", UNIT, 0)
        p.unbond("alice", 0)
        funded.advance(ONE_DAY)
        p.unstake("alice", 0)
        for op in (p.unstake, p.unbond, p.cancel_unbonding, p.claim):
            with pytest.raises(PositionClosedError):
                op("alice", 0)


class TestBatchOperations:
    """Batch variants skip positions not in the required state."""

    def test_unbond_all_is_idempotent(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        p.stake("alice", 100 * UNIT, 2)
        assert p.unbond_all("alice") == [0, 1]
        totals = (p.state.total_principal, p.state.total_boosted_principal)
        assert p.unbond_all("alice") == []
        assert (p.state.total_principal, p.state.total_boosted_principal) == totals
        assert len(p.events.of_type(UnbondStarted)) == 2

    def test_unbond_all_skips_unbonding_and_closed(self, funded):
        p = funded.program
        for _ in range(3):
            p.stake("alice", UNIT, 0)
        p.unbond("alice", 0)
        funded.advance(ONE_DAY)
        p.unstake("alice", 0)
        p.unbond("alice", 1)
        assert p.unbond_all("alice") == [2]

    def test_cancel_unbonding_all(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 1)
        p.stake("alice", 100 * UNIT, 2)
        p.stake("alice", 100 * UNIT, 0)
        p.unbond("alice", 0)
        p.unbond("alice", 1)
        assert p.cancel_unbonding_all("alice") == [0, 1]
        assert p.state.total_boosted_principal == (140 + 200 + 110) * UNIT
        assert p.cancel_unbonding_all("alice") == []

    def test_unstake_all_only_takes_withdrawable(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)  # Unbonds, 1 day cooldown
        p.stake("alice", 200 * UNIT, 2)  # Unbonds, 14 day cooldown
        p.stake("alice", 300 * UNIT, 0)  # Stays locked
        p.unbond("alice", 0)
        p.unbond("alice", 1)
        funded.advance(2 * ONE_DAY)
        before = funded.stake_token.balance_of("alice")

        rewards = p.unstake_all("alice")

        assert len(rewards) == 1
        assert funded.stake_token.balance_of("alice") == before + 100 * UNIT
        assert p.position_state("alice", 1) is BondState.UNBONDING
        assert p.position_state("alice", 2) is BondState.ACTIVE_LOCKED
        assert p.state.total_principal == 500 * UNIT

    def test_unstake_all_with_nothing_withdrawable(self, funded):
        funded.program.stake("alice", UNIT, 0)
        assert funded.program.unstake_all("alice") == []

    def test_batch_on_unknown_depositor_is_noop(self, funded):
        p = funded.program
        assert p.unbond_all("nobody") == []
        assert p.cancel_unbonding_all("nobody") == []
        assert p.unstake_all("nobody") == []
        assert p.claim_all("nobody") == []


class TestClaim:
    """Claims pay reward without touching principal or lock state."""

    def test_claim_pays_unclaimed(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 2)
        funded.advance(ONE_DAY)
        expected = p.earned("alice", 0)
        reward = p.claim("alice", 0)
        assert reward == expected
        assert reward == pytest.approx(ONE_DAY * UNIT, rel=1e-12)
        assert funded.reward_token.balance_of("alice") == reward
        position = p.position("alice", 0)
        assert position.unclaimed_reward == 0
        assert position.principal == 100 * UNIT
        assert position.boosted_principal == 200 * UNIT
        assert p.events.of_type(Claimed)[-1].reward == reward

    def test_claim_twice_pays_nothing_new(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        funded.advance(ONE_DAY)
        p.claim("alice", 0)
        assert p.claim("alice", 0) == 0
        assert len(p.events.of_type(Claimed)) == 1

    def test_claim_all_skips_events_for_empty_claims(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        funded.advance(ONE_DAY)
        p.stake("alice", 100 * UNIT, 0)

        rewards = p.claim_all("alice")

        assert rewards[0] > 0
        assert rewards[1] == 0
        claimed = p.events.of_type(Claimed)
        assert [e.position_id for e in claimed] == [0]

    def test_claim_while_unbonding(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 2)
        p.unbond("alice", 0)
        funded.advance(ONE_DAY)
        assert p.claim("alice", 0) > 0
        assert p.position_state("alice", 0) is BondState.UNBONDING

    def test_claim_all_returns_per_position(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        p.stake("alice", 100 * UNIT, 0)
        funded.advance(ONE_DAY)
        rewards = p.claim_all("alice")
        assert len(rewards) == 2
        assert rewards[0] == rewards[1]
        assert funded.reward_token.balance_of("alice") == sum(rewards)


class TestAtomicity:
    """Failed operations leave no trace."""

    def test_failed_transfer_rolls_back_stake(self, funded):
        p = funded.program
        p.stake("alice", 100 * UNIT, 0)
        funded.advance(ONE_DAY)
        before = p.current_state()
        events = len(p.events.events)

        with pytest.raises(TransferError):
            p.stake("mallory", 100 * UNIT, 0)

        assert p.current_state() == before
        assert p.positions_of("mallory") == []
        assert len(p.events.events) == events

    def test_failed_second_stake_keeps_first_position(self, funded):
        p = funded.program
        funded.stake_token.approve("bob", p.address, 100 * UNIT)
        p.stake("bob", 100 * UNIT, 0)
        with pytest.raises(TransferError):
            p.stake("bob", 50 * UNIT, 0)
        positions = p.positions_of("bob")
        assert len(positions) == 1
        assert positions[0].principal == 100 * UNIT
        assert p.state.total_principal == 100 * UNIT

    def test_rejected_operation_does_not_bump_version(self, funded):
        p = funded.program
        version = p.state.version
        with pytest.raises(InputError):
            p.unbond("alice", 7)
        assert p.state.version == version
        p.stake("alice", UNIT, 0)
        assert p.state.version == version + 1


def make_reentrant_env():
    """Program whose reward token calls back into claim_all while armed."""
    armed = {"on": False}
    holder = {}

    def hook(sender, recipient, amount):
        if armed["on"] and recipient == "alice":
            holder["program"].claim_all("alice")

    env = make_env(reward_token=InMemoryToken("REWARD", on_transfer=hook))
    holder["program"] = env.program
    env.program.fund_rewards(ADMIN, REWARDS)
    return env, armed


class TestReentrancy:
    """Asset callbacks cannot re-enter the program."""

    def test_reentrant_claim_is_rejected_and_rolled_back(self):
        env, armed = make_reentrant_env()
        p = env.program
        p.stake("alice", 100 * UNIT, 0)
        env.advance(ONE_DAY)

        armed["on"] = True
        with pytest.raises(ReentrancyError):
            p.claim("alice", 0)
        assert env.reward_token.balance_of("alice") == 0
        assert p.position("alice", 0).unclaimed_reward == 0
        assert p.state.total_rewards_paid == 0

        armed["on"] = False
        reward = p.claim("alice", 0)
        assert reward > 0
        assert env.reward_token.balance_of("alice") == reward

    @pytest.mark.parametrize("single", [True, False])
    def test_failed_reward_transfer_returns_principal(self, single):
        """Principal already sent is taken back when the reward leg fails."""
        env, armed = make_reentrant_env()
        p = env.program
        p.stake("alice", 100 * UNIT, 0)
        p.stake("bob", 100 * UNIT, 0)
        p.unbond("alice", 0)
        env.advance(ONE_DAY)
        balance = env.stake_token.balance_of("alice")
        events = len(p.events.events)

        armed["on"] = True
        with pytest.raises(ReentrancyError):
            if single:
                p.unstake("alice", 0)
            else:
                p.unstake_all("alice")

        assert env.stake_token.balance_of("alice") == balance
        assert env.stake_token.balance_of(p.address) == 200 * UNIT
        assert env.reward_token.balance_of("alice") == 0
        assert p.position("alice", 0).principal == 100 * UNIT
        assert p.state.total_principal == 200 * UNIT
        assert len(p.events.events) == events

        armed["on"] = False
        p.unstake("alice", 0)
        assert env.stake_token.balance_of("alice") == balance + 100 * UNIT
        assert env.stake_token.balance_of(p.address) == p.state.total_principal == 100 * UNIT


class TestInvariantErrors:
    """Accounting-invariant failures are fatal and logged distinctly."""

    def test_tampered_boost_total_is_fatal(self, funded, caplog):
        p = funded.program
        p.stake("alice", 100 * UNIT, 2)
        p.state.total_boosted_principal = p.state.total_principal  # Tamper

        with caplog.at_level(logging.CRITICAL, logger="bondledger.invariants"):
            with pytest.raises(AccountingInvariantError):
                p.unbond("alice", 0)

        assert any(r.name == "bondledger.invariants" for r in caplog.records)
        assert p.position("alice", 0).unbond_ready_at == 0
