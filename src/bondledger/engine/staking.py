"""Staking program - public operation surface of the bonding ledger.

Every mutating operation runs as one atomic step:

1. nonreentrant: reject nested calls, read the clock once, open a journal
2. settles: catch the global accumulator up to now
3. body: checks, then ledger effects, then asset transfers last
4. commit: bump the state version and publish buffered events

Any exception rolls the global state and every touched position back to
their values before the call, and drops the buffered events.
"""

import functools
import logging
from dataclasses import fields, replace
from typing import Dict, List, Optional, Tuple, Union

from .accumulator import GlobalState, ProgramStatus, RewardAccumulator
from .assets import AssetTransferService
from .clock import Clock, SystemClock
from .errors import (
    DepositTooSmallError,
    InvalidMinimumDepositError,
    NoRewardsLeftError,
    ProgramNotTerminatedError,
    ProgramPausedError,
    ProgramTerminatedError,
    ReentrancyError,
    RewardPeriodActiveError,
    RewardsNotClaimableError,
    RewardsNotFundedError,
    UnauthorizedError,
    ZeroAmountError,
)
from .events import (
    Claimed,
    EmergencyClaimed,
    EmergencyWithdrawal,
    Event,
    EventLog,
    FundingScheduled,
    MinimumDepositUpdated,
    PauseChanged,
    RewardsDurationUpdated,
    Staked,
    Terminated,
    UnbondCancelled,
    UnbondStarted,
    Unstaked,
)
from .policy import ONE_DAY, LockPolicy, LockTier
from .positions import BondState, Position, PositionLedger, fail_invariant

logger = logging.getLogger(__name__)

DEFAULT_REWARDS_DURATION = 30 * ONE_DAY
# Upper bound for any rewards duration; sizes the reward-rate ceiling.
DEFAULT_MAX_REWARDS_DURATION = 4 * 365 * ONE_DAY

Payout = Tuple[AssetTransferService, str, int]


def nonreentrant(func):
    """Run an operation atomically and refuse re-entrant calls."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrancyError(func.__name__)
        self._entered = True
        self._now = self.clock.now()
        self._pending_events = []
        saved_state = replace(self.state)
        self.ledger.begin()
        try:
            result = func(self, *args, **kwargs)
            self.ledger.check_totals()
        except Exception as exc:
            self.ledger.rollback()
            for f in fields(GlobalState):
                setattr(self.state, f.name, getattr(saved_state, f.name))
            self._pending_events = []
            logger.debug("%s rolled back: %s", func.__name__, exc)
            raise
        finally:
            self._entered = False
        self.ledger.commit()
        self.state.version += 1
        events, self._pending_events = self._pending_events, []
        self.events.publish(events)
        return result

    return wrapper


def settles(func):
    """Settle the global accumulator before the operation body runs."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        self.accumulator.settle(self._now)
        return func(self, *args, **kwargs)

    return wrapper


class StakingProgram:
    """Time-weighted, boost-aware reward ledger for bonded deposits."""

    def __init__(
        self,
        stake_token: AssetTransferService,
        reward_token: AssetTransferService,
        admin: str,
        distributor: Optional[str] = None,
        policy: Optional[LockPolicy] = None,
        rewards_duration: int = DEFAULT_REWARDS_DURATION,
        minimum_deposit: int = 0,
        max_rewards_duration: int = DEFAULT_MAX_REWARDS_DURATION,
        clock: Optional[Clock] = None,
        address: str = "staking-program",
        event_log: Optional[EventLog] = None,
    ):
        """
        Initialize the staking program.

        Args:
            stake_token: Asset deposited by stakers
            reward_token: Asset paid out as rewards (may be the same object)
            admin: Owner allowed to pause, terminate and tune parameters
            distributor: Account allowed to fund rewards (defaults to admin)
            policy: Lock tiers (defaults to day / week / two weeks)
            rewards_duration: Length of each funded period in seconds
            minimum_deposit: Floor for new stakes
            max_rewards_duration: Longest duration ever allowed
            clock: Time source (defaults to system time)
            address: Account holding the program's assets
            event_log: Sink for committed events
        """
        self.stake_token = stake_token
        self.reward_token = reward_token
        self.admin = admin
        self.distributor = distributor or admin
        self.policy = policy or LockPolicy.default()
        self.minimum_deposit = minimum_deposit
        self.clock = clock or SystemClock()
        self.address = address
        self.events = event_log or EventLog()

        self.state = GlobalState()
        self.accumulator = RewardAccumulator(self.state, max_rewards_duration)
        self.accumulator.set_duration(rewards_duration)
        self.ledger = PositionLedger(self.state)

        self._entered = False
        self._now = 0
        self._pending_events: List[Event] = []

    @classmethod
    def from_config(cls, config, stake_token, reward_token, admin, distributor=None, clock=None, **kwargs):
        """Build a program from a validated Config."""
        return cls(
            stake_token=stake_token,
            reward_token=reward_token,
            admin=admin,
            distributor=distributor,
            policy=LockPolicy.from_config(config.lock_tiers),
            rewards_duration=config.program.rewards_duration_seconds,
            minimum_deposit=config.program.minimum_deposit,
            max_rewards_duration=config.program.max_rewards_duration_seconds,
            clock=clock,
            **kwargs
        )

    # ========================================================================
    # USER OPERATIONS
    # ========================================================================

    @nonreentrant
    @settles
    def stake(self, depositor: str, amount: int, lock: Union[int, str] = 0) -> int:
        """
        Open a new position.

        Args:
            depositor: Account staking (and paying) the asset
            amount: Principal to deposit
            lock: Lock tier index or name

        Returns:
            The new position id
        """
        self._require_running()
        if amount <= 0:
            raise ZeroAmountError("stake amount")
        if amount < self.minimum_deposit:
            raise DepositTooSmallError(amount, self.minimum_deposit)
        tier = self.policy.resolve(lock)
        if not self.state.funded:
            raise RewardsNotFundedError()
        if self._now > self.state.period_end:
            raise NoRewardsLeftError(self.state.period_end, self._now)

        position = self.ledger.open(
            depositor, amount, tier, self.state.accumulated_reward_per_boosted_unit, self._now
        )
        self._emit(Staked(
            self._now, depositor, position.position_id, amount, position.boosted_principal, tier.name
        ))
        self.stake_token.transfer_from(self.address, depositor, self.address, amount)
        return position.position_id

    @nonreentrant
    @settles
    def unbond(self, depositor: str, position_id: int) -> int:
        """Start the cooldown of a locked position. Returns the ready time."""
        self._require_running()
        position = self.ledger.get_open(depositor, position_id)
        return self._unbond(position)

    @nonreentrant
    @settles
    def unbond_all(self, depositor: str) -> List[int]:
        """Unbond every locked position. Returns the ids that started unbonding."""
        self._require_running()
        unbonded = []
        for position in self.ledger.positions_of(depositor):
            if position.state(self._now) is BondState.ACTIVE_LOCKED:
                self._unbond(position)
                unbonded.append(position.position_id)
        return unbonded

    @nonreentrant
    @settles
    def cancel_unbonding(self, depositor: str, position_id: int) -> None:
        """Return an unbonding position to its locked, boosted state."""
        self._require_running()
        position = self.ledger.get_open(depositor, position_id)
        self._cancel_unbonding(position)

    @nonreentrant
    @settles
    def cancel_unbonding_all(self, depositor: str) -> List[int]:
        self._require_running()
        cancelled = []
        for position in self.ledger.positions_of(depositor):
            if not position.closed and position.unbond_ready_at != 0:
                self._cancel_unbonding(position)
                cancelled.append(position.position_id)
        return cancelled

    @nonreentrant
    @settles
    def unstake(self, depositor: str, position_id: int) -> int:
        """
        Close a withdrawable position.

        Returns principal in the stake asset and all unclaimed reward in the
        reward asset.

        Returns:
            Reward paid

        Raises:
            StillLockedError: If the position never unbonded or is cooling down
        """
        self._require_running()
        position = self.ledger.get_open(depositor, position_id)
        self.ledger.check_withdrawable(position, self._now)
        principal, reward = self._unstake(position)
        self._pay_out([
            (self.stake_token, depositor, principal),
            (self.reward_token, depositor, reward),
        ])
        return reward

    @nonreentrant
    @settles
    def unstake_all(self, depositor: str) -> List[int]:
        """Close every withdrawable position. Returns the reward paid per position."""
        self._require_running()
        rewards = []
        total_principal = 0
        for position in self.ledger.positions_of(depositor):
            if position.state(self._now) is BondState.WITHDRAWABLE:
                principal, reward = self._unstake(position)
                total_principal += principal
                rewards.append(reward)
        self._pay_out([
            (self.stake_token, depositor, total_principal),
            (self.reward_token, depositor, sum(rewards)),
        ])
        return rewards

    @nonreentrant
    @settles
    def claim(self, depositor: str, position_id: int) -> int:
        """Pay out the unclaimed reward of one position."""
        self._require_running()
        position = self.ledger.get_open(depositor, position_id)
        reward = self._claim(position)
        self._pay_out([(self.reward_token, depositor, reward)])
        return reward

    @nonreentrant
    @settles
    def claim_all(self, depositor: str) -> List[int]:
        """Pay out the unclaimed reward of every open position."""
        self._require_running()
        rewards = [
            self._claim(position)
            for position in self.ledger.positions_of(depositor)
            if not position.closed
        ]
        self._pay_out([(self.reward_token, depositor, sum(rewards))])
        return rewards

    # ========================================================================
    # ADMIN OPERATIONS
    # ========================================================================

    @nonreentrant
    @settles
    def fund_rewards(self, caller: str, amount: int) -> int:
        """
        Fund a new reward period or top up the running one.

        Returns:
            The new reward rate per second
        """
        self._require_role(caller, self.distributor, "reward distributor")
        self._require_running()
        rate = self.accumulator.fund(amount, self._now)
        self._emit(FundingScheduled(self._now, amount, rate, self.state.period_end))
        self.reward_token.transfer_from(self.address, caller, self.address, amount)
        return rate

    @nonreentrant
    @settles
    def set_rewards_duration(self, caller: str, duration: int) -> None:
        """Change the period length used by future fundings."""
        self._require_role(caller, self.admin, "admin")
        self._require_not_terminated()
        if self._now < self.state.period_end:
            raise RewardPeriodActiveError(self.state.period_end, self._now)
        self.accumulator.set_duration(duration)
        self._emit(RewardsDurationUpdated(self._now, duration))

    @nonreentrant
    def set_minimum_deposit(self, caller: str, minimum: int) -> None:
        self._require_role(caller, self.admin, "admin")
        if minimum < 0:
            raise InvalidMinimumDepositError(minimum)
        self.minimum_deposit = minimum
        self._emit(MinimumDepositUpdated(self._now, minimum))

    @nonreentrant
    @settles
    def set_paused(self, caller: str, paused: bool) -> None:
        self._require_role(caller, self.admin, "admin")
        self._require_not_terminated()
        self.state.status = ProgramStatus.PAUSED if paused else ProgramStatus.RUNNING
        self._emit(PauseChanged(self._now, paused))
        logger.info("Program %s at %d", "paused" if paused else "unpaused", self._now)

    @nonreentrant
    @settles
    def terminate(self, caller: str, make_rewards_claimable: bool) -> int:
        """
        End the program irreversibly.

        Emission stops now. Without claimable rewards, the reward asset held
        by the program is swept back to the admin.

        Returns:
            Reward units swept to the admin
        """
        self._require_role(caller, self.admin, "admin")
        self._require_not_terminated()
        self.accumulator.stop(self._now)
        self.state.status = ProgramStatus.TERMINATED
        self.state.emergency_rewards_claimable = make_rewards_claimable

        swept = 0
        if not make_rewards_claimable:
            swept = self._reward_balance()
        self._emit(Terminated(self._now, make_rewards_claimable, swept))
        logger.info(
            "Program terminated at %d (rewards claimable=%s, swept=%d)",
            self._now, make_rewards_claimable, swept
        )
        if swept:
            self.reward_token.transfer(self.address, self.admin, swept)
        return swept

    # ========================================================================
    # EMERGENCY PATHS
    # ========================================================================

    @nonreentrant
    @settles
    def emergency_withdraw(self, depositor: str, position_id: Optional[int] = None) -> int:
        """
        Return principal after termination, ignoring locks and cooldowns.

        Rewards settled up to termination stay on the position for
        emergency_claim.

        Args:
            depositor: Position owner
            position_id: A single position, or None for all of them

        Returns:
            Principal returned
        """
        self._require_terminated()
        if position_id is None:
            positions = [p for p in self.ledger.positions_of(depositor) if not p.closed]
        else:
            positions = [self.ledger.get_open(depositor, position_id)]

        total = 0
        for position in positions:
            self.ledger.settle(position, self.state.accumulated_reward_per_boosted_unit)
            principal = self.ledger.withdraw_principal(position)
            total += principal
            self._emit(EmergencyWithdrawal(self._now, depositor, position.position_id, principal))
        self._pay_out([(self.stake_token, depositor, total)])
        return total

    @nonreentrant
    @settles
    def emergency_claim(self, depositor: str) -> int:
        """Pay out every reward settled up to termination. Returns the total."""
        self._require_terminated()
        if not self.state.emergency_rewards_claimable:
            raise RewardsNotClaimableError()
        total = 0
        for position in self.ledger.positions_of(depositor):
            self.ledger.settle(position, self.state.accumulated_reward_per_boosted_unit)
            reward = self.ledger.take_reward(position)
            if reward:
                self._record_paid(reward)
                total += reward
                self._emit(EmergencyClaimed(self._now, depositor, position.position_id, reward))
        self._pay_out([(self.reward_token, depositor, total)])
        return total

    # ========================================================================
    # VIEWS
    # ========================================================================

    def current_state(self) -> GlobalState:
        """Copy of the global state."""
        return replace(self.state)

    def position(self, depositor: str, position_id: int) -> Position:
        return replace(self.ledger.get(depositor, position_id))

    def positions_of(self, depositor: str) -> List[Position]:
        return [replace(p) for p in self.ledger.positions_of(depositor)]

    def position_state(self, depositor: str, position_id: int) -> BondState:
        return self.ledger.get(depositor, position_id).state(self.clock.now())

    def reward_per_boosted_unit(self) -> int:
        return self.accumulator.reward_per_boosted_unit(self.clock.now())

    def earned(self, depositor: str, position_id: int) -> int:
        """Unclaimed plus pending reward of a position, as of now."""
        position = self.ledger.get(depositor, position_id)
        return position.unclaimed_reward + position.pending_reward(self.reward_per_boosted_unit())

    def earned_all(self, depositor: str) -> int:
        acc = self.reward_per_boosted_unit()
        return sum(p.unclaimed_reward + p.pending_reward(acc) for p in self.ledger.positions_of(depositor))

    def reward_for_duration(self) -> int:
        return self.state.reward_rate_per_second * self.state.rewards_duration

    def lock_tiers(self) -> List[LockTier]:
        return self.policy.tiers

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _acc(self) -> int:
        return self.state.accumulated_reward_per_boosted_unit

    def _unbond(self, position: Position) -> int:
        self.ledger.settle(position, self._acc())
        ready_at = self.ledger.begin_unbonding(position, self._now)
        self._emit(UnbondStarted(self._now, position.depositor, position.position_id, ready_at))
        return ready_at

    def _cancel_unbonding(self, position: Position) -> None:
        self.ledger.settle(position, self._acc())
        self.ledger.cancel_unbonding(position)
        self._emit(UnbondCancelled(self._now, position.depositor, position.position_id))

    def _unstake(self, position: Position) -> Tuple[int, int]:
        self.ledger.settle(position, self._acc())
        principal, reward = self.ledger.close(position)
        self._record_paid(reward)
        self._emit(Unstaked(self._now, position.depositor, position.position_id, principal, reward))
        return principal, reward

    def _claim(self, position: Position) -> int:
        self.ledger.settle(position, self._acc())
        reward = self.ledger.take_reward(position)
        if reward:
            self._record_paid(reward)
            self._emit(Claimed(self._now, position.depositor, position.position_id, reward))
        return reward

    def _record_paid(self, reward: int) -> None:
        self.state.total_rewards_paid += reward
        if self.state.total_rewards_paid > self.state.total_rewards_funded:
            raise fail_invariant(
                f"rewards paid {self.state.total_rewards_paid} exceed rewards funded "
                f"{self.state.total_rewards_funded}"
            )

    def _reward_balance(self) -> int:
        """Reward asset held by the program, excluding deposited principal."""
        balance = self.reward_token.balance_of(self.address)
        if self.reward_token is self.stake_token:
            balance -= self.state.total_principal
        return max(0, balance)

    def _pay_out(self, payouts: List[Payout]) -> None:
        """Check every outgoing transfer can settle, then perform them.

        If a transfer fails, the ones already made are sent back before the
        error propagates.
        """
        needed: Dict[int, list] = {}
        for token, _, amount in payouts:
            entry = needed.setdefault(id(token), [token, 0])
            entry[1] += amount
        for token, amount in needed.values():
            available = token.balance_of(self.address)
            if amount > available:
                raise fail_invariant(
                    f"program owes {amount} but holds {available} of {getattr(token, 'symbol', token)}"
                )
        completed: List[Payout] = []
        try:
            for token, recipient, amount in payouts:
                if amount:
                    token.transfer(self.address, recipient, amount)
                    completed.append((token, recipient, amount))
        except Exception:
            # Send back what already went out; the ledger rollback covers the rest
            for token, recipient, amount in reversed(completed):
                token.transfer(recipient, self.address, amount)
            raise

    def _emit(self, event: Event) -> None:
        self._pending_events.append(event)

    def _require_role(self, caller: str, expected: str, role: str) -> None:
        if caller != expected:
            raise UnauthorizedError(caller, role)

    def _require_running(self) -> None:
        if self.state.status is ProgramStatus.TERMINATED:
            raise ProgramTerminatedError()
        if self.state.status is ProgramStatus.PAUSED:
            raise ProgramPausedError()

    def _require_not_terminated(self) -> None:
        if self.state.terminated:
            raise ProgramTerminatedError()

    def _require_terminated(self) -> None:
        if not self.state.terminated:
            raise ProgramNotTerminatedError()
