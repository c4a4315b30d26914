"""Shared fixtures: a program with in-memory tokens and a manual clock."""

import os
import sys
from dataclasses import dataclass

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bondledger.engine.assets import InMemoryToken
from bondledger.engine.clock import ManualClock
from bondledger.engine.staking import StakingProgram

ONE_DAY = 60 * 60 * 24
PERIOD = 30 * ONE_DAY
UNIT = 10**18
START = 10_000_000
REWARDS = PERIOD * UNIT  # 1 token per second over one period
USERS = ["alice", "bob", "carol", "dave"]
ADMIN = "admin"


@dataclass
class Env:
    program: StakingProgram
    clock: ManualClock
    stake_token: InMemoryToken
    reward_token: InMemoryToken

    def advance(self, seconds: int) -> int:
        return self.clock.advance(seconds)


def make_env(reward_token: InMemoryToken = None, **program_kwargs) -> Env:
    clock = ManualClock(START)
    stake_token = InMemoryToken("STAKE")
    reward_token = reward_token or InMemoryToken("REWARD")
    program = StakingProgram(
        stake_token, reward_token, admin=ADMIN, clock=clock, rewards_duration=PERIOD, **program_kwargs
    )
    for user in USERS:
        stake_token.mint(user, 100_000 * UNIT)
        stake_token.approve(user, program.address, 100_000 * UNIT)
    reward_token.mint(ADMIN, 100 * REWARDS)
    reward_token.approve(ADMIN, program.address, 100 * REWARDS)
    return Env(program, clock, stake_token, reward_token)


@pytest.fixture
def env() -> Env:
    """Unfunded program."""
    return make_env()


@pytest.fixture
def funded(env) -> Env:
    """Program with one period of REWARDS funded at START."""
    env.program.fund_rewards(ADMIN, REWARDS)
    return env
