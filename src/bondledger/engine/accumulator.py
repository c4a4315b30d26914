"""Global reward accumulator - lazy, per-second reward emission.

Key Concepts:
- reward per boosted unit: cumulative reward earned by one boosted unit held
  since genesis, scaled by SCALE, never decreasing
- settle(now) catches the accumulator up to min(now, period_end); it is the
  only code path that moves the accumulator
- funding follows the rolling-period model: unspent reward from a running
  period is folded into the new rate instead of being restarted
- emission with no boosted stake, and rounding remainders from funding, are
  held as undistributed rewards and rolled into the next funding
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import (
    InvalidDurationError,
    RewardAmountTooSmallError,
    RewardRateTooLargeError,
    ZeroAmountError,
)
from .fixed_point import MAX_UINT256, SCALE, mul_div

logger = logging.getLogger(__name__)


class ProgramStatus(str, Enum):
    """Program lifecycle. TERMINATED is final."""
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"


@dataclass
class GlobalState:
    """Program-wide accounting state.

    Invariant: total_boosted_principal == 0 <=> total_principal == 0, and
    total_boosted_principal >= total_principal.
    """
    total_principal: int = 0
    total_boosted_principal: int = 0
    reward_rate_per_second: int = 0
    accumulated_reward_per_boosted_unit: int = 0  # Scaled by SCALE
    last_settlement_time: int = 0
    period_end: int = 0
    rewards_duration: int = 0
    undistributed_rewards: int = 0  # Deferred to the next funding
    total_rewards_funded: int = 0
    total_rewards_paid: int = 0
    status: ProgramStatus = ProgramStatus.RUNNING
    emergency_rewards_claimable: bool = False
    version: int = 0  # Bumped once per committed operation

    @property
    def funded(self) -> bool:
        return self.period_end != 0

    @property
    def paused(self) -> bool:
        return self.status is ProgramStatus.PAUSED

    @property
    def terminated(self) -> bool:
        return self.status is ProgramStatus.TERMINATED


def max_reward_rate(max_duration: int) -> int:
    """Largest rate for which elapsed * rate * SCALE fits a 256-bit word."""
    return MAX_UINT256 // (SCALE * max_duration)


class RewardAccumulator:
    """Owns every mutation of the accumulator fields of GlobalState."""

    def __init__(self, state: GlobalState, max_rewards_duration: int):
        """
        Args:
            state: Shared global state (mutated in place)
            max_rewards_duration: Longest period the program may ever use
        """
        self.state = state
        self.max_rewards_duration = max_rewards_duration

    def reward_per_boosted_unit(self, now: int) -> int:
        """Accumulator value as of now, without mutating state."""
        s = self.state
        effective = min(now, s.period_end)
        elapsed = effective - s.last_settlement_time
        if elapsed <= 0 or s.total_boosted_principal == 0:
            return s.accumulated_reward_per_boosted_unit
        return s.accumulated_reward_per_boosted_unit + mul_div(
            elapsed * s.reward_rate_per_second, SCALE, s.total_boosted_principal
        )

    def settle(self, now: int) -> int:
        """
        Catch the accumulator up to now.

        Returns:
            The settled accumulator value
        """
        s = self.state
        effective = min(now, s.period_end)
        elapsed = effective - s.last_settlement_time
        if elapsed > 0:
            if s.total_boosted_principal > 0:
                s.accumulated_reward_per_boosted_unit = self.reward_per_boosted_unit(now)
            else:
                s.undistributed_rewards += elapsed * s.reward_rate_per_second
            s.last_settlement_time = effective
        return s.accumulated_reward_per_boosted_unit

    def remaining_rewards(self, now: int) -> int:
        """Reward still scheduled to be emitted after now."""
        s = self.state
        if now >= s.period_end:
            return 0
        return (s.period_end - now) * s.reward_rate_per_second

    def fund(self, amount: int, now: int) -> int:
        """
        Start, extend or top up a reward period. Caller settles first.

        Args:
            amount: Newly added reward units
            now: Current timestamp

        Returns:
            New reward rate per second

        Raises:
            ZeroAmountError: If amount is zero
            RewardAmountTooSmallError: If the rate would round to zero
            RewardRateTooLargeError: If settlement could overflow
        """
        s = self.state
        duration = s.rewards_duration
        if amount <= 0:
            raise ZeroAmountError("reward amount")
        if amount < duration:
            raise RewardAmountTooSmallError(amount, duration)

        total = amount + self.remaining_rewards(now) + s.undistributed_rewards
        rate = total // duration
        limit = max_reward_rate(self.max_rewards_duration)
        if rate > limit:
            raise RewardRateTooLargeError(rate, limit)

        s.undistributed_rewards = total - rate * duration
        s.reward_rate_per_second = rate
        s.last_settlement_time = now
        s.period_end = now + duration
        s.total_rewards_funded += amount
        logger.info(
            "Funded %d reward units: rate=%d/s until %d (carried %d undistributed)",
            amount, rate, s.period_end, s.undistributed_rewards
        )
        return rate

    def set_duration(self, duration: int) -> None:
        if duration <= 0 or duration > self.max_rewards_duration:
            raise InvalidDurationError(duration, self.max_rewards_duration)
        self.state.rewards_duration = duration

    def stop(self, now: int) -> None:
        """Freeze emission at now. Caller settles first."""
        s = self.state
        if s.period_end > now:
            s.undistributed_rewards += self.remaining_rewards(now)
            s.period_end = now
