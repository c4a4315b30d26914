"""Scenario runner - Execute timed depositor actions against a fresh program.

Key Features:
- Fresh program, in-memory tokens and a manual clock per run
- One funded reward period of 1 token per second by default
- Ledger snapshot after every step for export and charting
- Everyone exits after the period so every reward is paid out
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.assets import InMemoryToken
from ..engine.clock import ManualClock
from ..engine.events import Claimed, EmergencyClaimed, Event, Unstaked
from ..engine.staking import StakingProgram
from ..validation.sanity_checks import SanityChecker, ValidationWarning, validate_simulation_results
from .scenarios import Scenario, ScenarioAction

logger = logging.getLogger(__name__)

PROGRAM_START = 10_000_000
ADMIN = "admin"
STARTING_BALANCE = 100_000  # Whole tokens minted to each depositor


@dataclass
class LedgerSnapshot:
    """Global ledger values at a point in time."""
    t: int
    label: str
    accumulator: int
    reward_rate: int
    period_end: int
    total_principal: int
    total_boosted_principal: int
    total_rewards_funded: int
    total_rewards_paid: int
    undistributed_rewards: int
    status: str
    earned: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulationResult:
    """Complete scenario result."""
    config: Config
    scenario: Scenario
    snapshots: List[LedgerSnapshot]
    rewards_by_depositor: Dict[str, int]
    total_rewards: int
    events: List[Event]
    warnings: List[ValidationWarning] = field(default_factory=list)

    @property
    def reward_shares(self) -> Dict[str, float]:
        if self.total_rewards <= 0:
            return {d: 0.0 for d in self.rewards_by_depositor}
        return {d: r / self.total_rewards for d, r in self.rewards_by_depositor.items()}

    @property
    def final_metrics(self) -> Dict[str, Any]:
        last = self.snapshots[-1]
        paid = sum(self.rewards_by_depositor.values())
        return {
            'total_rewards_funded': last.total_rewards_funded,
            'total_rewards_paid': paid,
            'undistributed_rewards': last.undistributed_rewards,
            'final_accumulator': last.accumulator,
            'payout_ratio': paid / self.total_rewards if self.total_rewards else 0.0,
            'num_events': len(self.events),
        }


class ScenarioRunner:
    """Run predefined scenarios on an isolated program."""

    def __init__(self, config: Config):
        """
        Initialize scenario runner.

        Args:
            config: Program configuration
        """
        self.config = config
        self.unit = config.unit

    def build_program(self, depositors: List[str]):
        """
        Create a program, tokens and clock with funded depositors.

        Returns:
            (program, clock, stake_token, reward_token)
        """
        clock = ManualClock(start=PROGRAM_START)
        stake_token = InMemoryToken("STAKE")
        reward_token = InMemoryToken("REWARD")
        program = StakingProgram.from_config(
            self.config, stake_token, reward_token, admin=ADMIN, clock=clock
        )
        for depositor in depositors:
            stake_token.mint(depositor, STARTING_BALANCE * self.unit)
            stake_token.approve(depositor, program.address, STARTING_BALANCE * self.unit)
        return program, clock, stake_token, reward_token

    def run(self, scenario: Scenario, total_rewards: Optional[int] = None) -> SimulationResult:
        """
        Run a scenario end to end.

        Args:
            scenario: Scenario to execute
            total_rewards: Reward funded for the period in base units
                (defaults to 1 token per second of the period)

        Returns:
            Simulation result
        """
        duration = self.config.program.rewards_duration_seconds
        if total_rewards is None:
            total_rewards = duration * self.unit

        depositors = sorted({a.depositor for step in scenario.steps for a in step.actions})
        program, clock, _, reward_token = self.build_program(depositors)
        reward_token.mint(ADMIN, total_rewards)
        reward_token.approve(ADMIN, program.address, total_rewards)

        snapshots = []
        program.fund_rewards(ADMIN, total_rewards)
        snapshots.append(self.snapshot(program, "fund", depositors))
        start = clock.now()

        for step in sorted(scenario.steps, key=lambda s: (s.at, s.offset_seconds)):
            clock.set(max(clock.now(), start + int(step.at * duration) + step.offset_seconds))
            for action in step.actions:
                self.apply(program, action)
            snapshots.append(self.snapshot(program, f"t={step.at:g}", depositors))

        # Exit: claim at the end of the period, unbond, wait out the longest cooldown
        clock.set(max(clock.now(), program.state.period_end))
        for depositor in depositors:
            program.claim_all(depositor)
            program.unbond_all(depositor)
        snapshots.append(self.snapshot(program, "end", depositors))

        clock.advance(max(t.cooldown for t in program.lock_tiers()))
        for depositor in depositors:
            program.unstake_all(depositor)
        snapshots.append(self.snapshot(program, "exit", depositors))

        rewards = rewards_by_depositor(program.events.events, depositors)
        warnings = SanityChecker(program).check_all()
        warnings.extend(validate_simulation_results(self.config, snapshots))
        logger.info(
            "Scenario '%s' finished: paid %d of %d reward units",
            scenario.name, sum(rewards.values()), total_rewards
        )
        return SimulationResult(
            config=self.config,
            scenario=scenario,
            snapshots=snapshots,
            rewards_by_depositor=rewards,
            total_rewards=total_rewards,
            events=list(program.events.events),
            warnings=warnings,
        )

    def apply(self, program: StakingProgram, action: ScenarioAction) -> None:
        """Translate one scenario action into program calls."""
        if action.action == "deposit":
            program.stake(action.depositor, int(action.amount * self.unit), action.lock)
        elif action.action == "unbond":
            program.unbond_all(action.depositor)
        elif action.action == "cancel":
            program.cancel_unbonding_all(action.depositor)
        elif action.action == "withdraw":
            program.unstake_all(action.depositor)
        elif action.action == "claim":
            program.claim_all(action.depositor)
        else:
            raise ValueError(f"Unknown scenario action: {action.action}")

    @staticmethod
    def snapshot(program: StakingProgram, label: str, depositors: List[str]) -> LedgerSnapshot:
        state = program.state
        return LedgerSnapshot(
            t=program.clock.now(),
            label=label,
            accumulator=program.reward_per_boosted_unit(),
            reward_rate=state.reward_rate_per_second,
            period_end=state.period_end,
            total_principal=state.total_principal,
            total_boosted_principal=state.total_boosted_principal,
            total_rewards_funded=state.total_rewards_funded,
            total_rewards_paid=state.total_rewards_paid,
            undistributed_rewards=state.undistributed_rewards,
            status=state.status.value,
            earned={d: program.earned_all(d) for d in depositors},
        )


def rewards_by_depositor(events: List[Event], depositors: List[str]) -> Dict[str, int]:
    """Total reward paid to each depositor, from committed events."""
    totals = {d: 0 for d in depositors}
    for event in events:
        if isinstance(event, (Claimed, Unstaked, EmergencyClaimed)):
            totals[event.depositor] = totals.get(event.depositor, 0) + event.reward
    return totals
