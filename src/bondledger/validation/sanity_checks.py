"""Sanity checks for ledger state and simulation output.

These are full scans (O(all positions)) and belong in simulations, tests
and audits, never in the per-operation path.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..config.schema import Config
from ..engine.staking import StakingProgram


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "conservation", "rewards", "boost", "input"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run sanity checks on a live staking program."""

    def __init__(self, program: StakingProgram):
        """Initialize with the program to inspect."""
        self.program = program

    def check_all(self) -> List[ValidationWarning]:
        warnings = []
        warnings.extend(self.check_conservation())
        warnings.extend(self.check_boosts())
        warnings.extend(self.check_reward_conservation())
        warnings.extend(self.check_lifecycle())
        return warnings

    def check_conservation(self) -> List[ValidationWarning]:
        """
        Global totals must equal the sums over open positions.

        Returns:
            List of validation warnings
        """
        warnings = []
        state = self.program.state
        principal_sum = 0
        boosted_sum = 0
        for position in self.program.ledger:
            principal_sum += position.principal
            boosted_sum += position.boosted_principal

        if principal_sum != state.total_principal:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Position principal does not sum to total principal",
                details=f"Sum: {principal_sum}, total: {state.total_principal}"
            ))
        if boosted_sum != state.total_boosted_principal:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Position boosted principal does not sum to total boosted principal",
                details=f"Sum: {boosted_sum}, total: {state.total_boosted_principal}"
            ))
        if (state.total_principal == 0) != (state.total_boosted_principal == 0):
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Boosted principal exists without principal (or vice versa)",
                details=f"Principal: {state.total_principal}, boosted: {state.total_boosted_principal}"
            ))

        held = self.program.stake_token.balance_of(self.program.address)
        if held < state.total_principal:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Program holds less stake asset than it owes depositors",
                details=f"Held: {held}, owed: {state.total_principal}"
            ))
        return warnings

    def check_boosts(self) -> List[ValidationWarning]:
        """Locked positions carry exactly their tier boost; unbonding ones none."""
        warnings = []
        for position in self.program.ledger:
            if position.closed:
                continue
            if position.unbond_ready_at == 0:
                expected = position.lock.boosted(position.principal)
            else:
                expected = position.principal
            if position.boosted_principal != expected:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="boost",
                    message=f"Position {position.depositor}/{position.position_id} has a wrong boost",
                    details=f"Boosted: {position.boosted_principal}, expected: {expected}"
                ))
        return warnings

    def check_reward_conservation(self) -> List[ValidationWarning]:
        """
        Every funded reward unit is accounted for at most once.

        Paid plus outstanding never exceeds funded, and adding deferred and
        still-scheduled emission keeps the total within funded too. The
        difference is rounding dust left in the accumulator.
        """
        warnings = []
        state = self.program.state
        now = self.program.clock.now()
        accumulator = self.program.reward_per_boosted_unit()
        outstanding = sum(
            p.unclaimed_reward + p.pending_reward(accumulator) for p in self.program.ledger
        )
        owed = state.total_rewards_paid + outstanding
        if owed > state.total_rewards_funded:
            warnings.append(ValidationWarning(
                severity="error",
                category="rewards",
                message="Rewards paid and owed exceed rewards funded",
                details=(
                    f"Paid: {state.total_rewards_paid}, outstanding: {outstanding}, "
                    f"funded: {state.total_rewards_funded}"
                )
            ))
            return warnings

        scheduled = self.program.accumulator.remaining_rewards(now)
        accounted = owed + state.undistributed_rewards + scheduled
        if accounted > state.total_rewards_funded:
            warnings.append(ValidationWarning(
                severity="error",
                category="rewards",
                message="Rewards owed, deferred and scheduled exceed rewards funded",
                details=(
                    f"Owed: {owed}, undistributed: {state.undistributed_rewards}, "
                    f"scheduled: {scheduled}, funded: {state.total_rewards_funded}"
                )
            ))
        return warnings

    def check_lifecycle(self) -> List[ValidationWarning]:
        warnings = []
        state = self.program.state
        if state.emergency_rewards_claimable and not state.terminated:
            warnings.append(ValidationWarning(
                severity="error",
                category="lifecycle",
                message="Emergency rewards are claimable on a live program"
            ))
        return warnings


def check_config_inputs(config: Config) -> List[ValidationWarning]:
    """
    Check configuration inputs for implausible values.

    Returns:
        List of validation warnings
    """
    warnings = []
    program = config.program

    for tier in config.lock_tiers:
        if tier.boost > 10:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message=f"Lock tier '{tier.name}' boost of {float(tier.boost) * 100:.0f}% is unusually high",
                details="Large boosts concentrate rewards in a few positions"
            ))
        if tier.cooldown_seconds > program.rewards_duration_seconds:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message=f"Lock tier '{tier.name}' cooldown is longer than a reward period",
                details=f"Cooldown: {tier.cooldown_seconds}s, period: {program.rewards_duration_seconds}s"
            ))

    boosts = [tier.boost for tier in config.lock_tiers]
    cooldowns = [tier.cooldown_seconds for tier in config.lock_tiers]
    if boosts != sorted(boosts) or cooldowns != sorted(cooldowns):
        warnings.append(ValidationWarning(
            severity="warning",
            category="input",
            message="Lock tiers are not ordered by boost and cooldown",
            details="A longer lock normally earns a larger boost"
        ))
    return warnings


def validate_simulation_results(config: Config, snapshots: Sequence[Any]) -> List[ValidationWarning]:
    """
    Validate a recorded ledger history.

    Args:
        config: Program configuration
        snapshots: Ledger snapshots in time order (need accumulator,
            total_principal, total_boosted_principal, total_rewards_paid and
            total_rewards_funded attributes)

    Returns:
        List of all validation warnings
    """
    warnings = check_config_inputs(config)

    for prev, curr in zip(snapshots, snapshots[1:]):
        if curr.accumulator < prev.accumulator:
            warnings.append(ValidationWarning(
                severity="error",
                category="rewards",
                message=f"Accumulator decreased at t={curr.t}",
                details=f"{prev.accumulator} -> {curr.accumulator}"
            ))
        if curr.total_rewards_paid < prev.total_rewards_paid:
            warnings.append(ValidationWarning(
                severity="error",
                category="rewards",
                message=f"Cumulative rewards paid decreased at t={curr.t}"
            ))

    for snap in snapshots:
        if snap.total_rewards_paid > snap.total_rewards_funded:
            warnings.append(ValidationWarning(
                severity="error",
                category="rewards",
                message=f"Rewards paid exceed rewards funded at t={snap.t}",
                details=f"Paid: {snap.total_rewards_paid}, funded: {snap.total_rewards_funded}"
            ))
        if snap.total_boosted_principal < snap.total_principal:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message=f"Boosted total below principal total at t={snap.t}"
            ))
    return warnings
