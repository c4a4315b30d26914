"""Monte Carlo interleavings for invariant checking.

Each run drives a fresh program with a random sequence of deposits,
unbonds, cancels, unstakes, claims, top-ups and clock jumps, then checks
the ledger after every step.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

from ..config.schema import Config
from ..engine.errors import InputError, StateError
from ..engine.staking import StakingProgram
from ..validation.sanity_checks import SanityChecker, ValidationWarning
from .runner import ADMIN, STARTING_BALANCE, ScenarioRunner

logger = logging.getLogger(__name__)

ACTIONS = [
    "stake", "unbond", "cancel", "unstake", "claim",
    "unbond_all", "cancel_all", "unstake_all", "claim_all", "fund",
]
ACTION_WEIGHTS = np.array([6, 3, 1, 3, 2, 1, 1, 1, 1, 1], dtype=float)


@dataclass
class MonteCarloRun:
    """Outcome of one random interleaving."""
    seed: int
    accepted: int
    rejected: Dict[str, int]
    total_rewards_funded: int
    total_rewards_paid: int
    undistributed_rewards: int
    final_accumulator: int
    warnings: List[ValidationWarning] = field(default_factory=list)

    @property
    def payout_ratio(self) -> float:
        if self.total_rewards_funded == 0:
            return 0.0
        return self.total_rewards_paid / self.total_rewards_funded


class MonteCarloRunner:
    """Run randomized interleavings and collect invariant violations."""

    def __init__(self, config: Config):
        """
        Initialize Monte Carlo runner.

        Args:
            config: Base configuration (simulation section drives sampling)
        """
        self.config = config
        self.unit = config.unit
        self.scenario_runner = ScenarioRunner(config)

    def run(self, num_runs: int = None, random_seed: int = None) -> List[MonteCarloRun]:
        """
        Run Monte Carlo simulation.

        Args:
            num_runs: Number of runs (defaults to config value)
            random_seed: Random seed (defaults to config value)

        Returns:
            List of run outcomes
        """
        if num_runs is None:
            num_runs = self.config.simulation.monte_carlo_runs

        if random_seed is None:
            random_seed = self.config.simulation.random_seed

        return [self.run_once(random_seed + run_idx) for run_idx in range(num_runs)]

    def run_once(self, seed: int) -> MonteCarloRun:
        sim = self.config.simulation
        rng = np.random.default_rng(seed)
        depositors = [f"depositor{i}" for i in range(sim.num_depositors)]
        program, clock, stake_token, _ = self.scenario_runner.build_program(depositors)
        checker = SanityChecker(program)

        self._fund(program)
        warnings: List[ValidationWarning] = []
        rejected: Counter = Counter()
        accepted = 0
        last_accumulator = program.reward_per_boosted_unit()

        probabilities = ACTION_WEIGHTS / ACTION_WEIGHTS.sum()
        for _ in range(sim.num_actions):
            clock.advance(int(rng.integers(0, sim.max_time_step_seconds + 1)))
            action = ACTIONS[rng.choice(len(ACTIONS), p=probabilities)]
            depositor = depositors[int(rng.integers(0, len(depositors)))]
            before = program.current_state()
            try:
                self._apply(program, rng, action, depositor)
                accepted += 1
            except (InputError, StateError) as exc:
                rejected[type(exc).__name__] += 1
                if program.current_state() != before:
                    warnings.append(ValidationWarning(
                        severity="error",
                        category="atomicity",
                        message=f"Rejected {action} changed the ledger",
                        details=str(exc)
                    ))

            accumulator = program.reward_per_boosted_unit()
            if accumulator < last_accumulator:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="rewards",
                    message=f"Accumulator decreased after {action} at t={clock.now()}",
                    details=f"{last_accumulator} -> {accumulator}"
                ))
            last_accumulator = accumulator
            warnings.extend(checker.check_all())

        warnings.extend(self._exit_everyone(program, clock, stake_token, depositors))
        state = program.state
        if warnings:
            logger.warning("Run with seed %d produced %d warnings", seed, len(warnings))
        return MonteCarloRun(
            seed=seed,
            accepted=accepted,
            rejected=dict(rejected),
            total_rewards_funded=state.total_rewards_funded,
            total_rewards_paid=state.total_rewards_paid,
            undistributed_rewards=state.undistributed_rewards,
            final_accumulator=state.accumulated_reward_per_boosted_unit,
            warnings=warnings,
        )

    def _fund(self, program: StakingProgram) -> None:
        amount = self.config.simulation.funding_amount * self.unit
        program.reward_token.mint(ADMIN, amount)
        program.reward_token.approve(ADMIN, program.address, amount)
        program.fund_rewards(ADMIN, amount)

    def _apply(self, program: StakingProgram, rng: np.random.Generator, action: str, depositor: str) -> None:
        positions = program.positions_of(depositor)
        # One past the end so unknown ids get exercised too
        position_id = int(rng.integers(0, len(positions) + 1))

        if action == "stake":
            amount = int(rng.integers(1, self.config.simulation.max_stake + 1)) * self.unit
            program.stake(depositor, amount, int(rng.integers(0, len(program.lock_tiers()))))
        elif action == "unbond":
            program.unbond(depositor, position_id)
        elif action == "cancel":
            program.cancel_unbonding(depositor, position_id)
        elif action == "unstake":
            program.unstake(depositor, position_id)
        elif action == "claim":
            program.claim(depositor, position_id)
        elif action == "unbond_all":
            program.unbond_all(depositor)
        elif action == "cancel_all":
            program.cancel_unbonding_all(depositor)
        elif action == "unstake_all":
            program.unstake_all(depositor)
        elif action == "claim_all":
            program.claim_all(depositor)
        elif action == "fund":
            self._fund(program)
        else:
            raise ValueError(f"Unknown action: {action}")

    def _exit_everyone(self, program, clock, stake_token, depositors) -> List[ValidationWarning]:
        """Close every position and check all principal came back."""
        warnings = []
        clock.set(max(clock.now(), program.state.period_end))
        for depositor in depositors:
            program.claim_all(depositor)
            program.unbond_all(depositor)
        clock.advance(max(t.cooldown for t in program.lock_tiers()))
        for depositor in depositors:
            program.unstake_all(depositor)
            balance = stake_token.balance_of(depositor)
            if balance != STARTING_BALANCE * self.unit:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="conservation",
                    message=f"{depositor} did not get all principal back",
                    details=f"Balance: {balance}, expected: {STARTING_BALANCE * self.unit}"
                ))
        if program.state.total_principal or program.state.total_boosted_principal:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Principal left in the program after everyone exited",
                details=(
                    f"Principal: {program.state.total_principal}, "
                    f"boosted: {program.state.total_boosted_principal}"
                )
            ))
        return warnings


def summarize_runs(runs: List[MonteCarloRun]) -> Dict[str, Any]:
    """Aggregate statistics across runs."""
    if not runs:
        return {}
    payout = np.array([r.payout_ratio for r in runs])
    rejected: Counter = Counter()
    for r in runs:
        rejected.update(r.rejected)
    return {
        'runs': len(runs),
        'runs_with_warnings': sum(1 for r in runs if r.warnings),
        'payout_ratio_mean': float(np.mean(payout)),
        'payout_ratio_p5': float(np.percentile(payout, 5)),
        'payout_ratio_min': float(np.min(payout)),
        'accepted_mean': float(np.mean([r.accepted for r in runs])),
        'rejected_by_error': dict(rejected),
    }
