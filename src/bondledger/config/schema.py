"""Pydantic schema for configuration validation."""

import hashlib
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

ONE_DAY = 60 * 60 * 24


class LockTierConfig(BaseModel):
    """One lock tier: reward boost and unbonding cooldown."""
    name: str = Field(min_length=1, description="Tier name, e.g. 'week'")
    boost: Decimal = Field(ge=0, description="Extra reward weight, e.g. 0.4 = +40%")
    cooldown_days: Optional[float] = Field(default=None, gt=0, description="Unbonding cooldown in days")
    cooldown_seconds: Optional[int] = Field(default=None, gt=0, description="Unbonding cooldown in seconds")

    @model_validator(mode='after')
    def resolve_cooldown(self):
        """Accept the cooldown in days or seconds; store seconds."""
        if self.cooldown_seconds is None:
            if self.cooldown_days is None:
                raise ValueError(f"Lock tier '{self.name}' needs cooldown_days or cooldown_seconds")
            self.cooldown_seconds = int(self.cooldown_days * ONE_DAY)
        return self


class ProgramConfig(BaseModel):
    """Reward program parameters."""
    rewards_duration_seconds: int = Field(default=30 * ONE_DAY, gt=0, description="Length of a funded period")
    minimum_deposit: int = Field(default=0, ge=0, description="Floor for new stakes, in base units")
    max_rewards_duration_seconds: int = Field(
        default=4 * 365 * ONE_DAY, gt=0,
        description="Longest period ever allowed; sizes the reward-rate ceiling"
    )
    token_decimals: int = Field(default=18, ge=0, le=36, description="Decimals of both assets")

    @model_validator(mode='after')
    def validate_duration(self):
        if self.rewards_duration_seconds > self.max_rewards_duration_seconds:
            raise ValueError(
                f"rewards_duration_seconds ({self.rewards_duration_seconds}) exceeds "
                f"max_rewards_duration_seconds ({self.max_rewards_duration_seconds})"
            )
        return self


class SimulationConfig(BaseModel):
    """Randomized interleaving parameters."""
    monte_carlo_runs: int = Field(default=20, gt=0, description="Number of random runs")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")
    num_depositors: int = Field(default=4, gt=0, description="Accounts taking part")
    num_actions: int = Field(default=200, gt=0, description="Actions per run")
    max_stake: int = Field(default=1_000, gt=0, description="Largest single stake, in whole tokens")
    max_time_step_seconds: int = Field(default=2 * ONE_DAY, gt=0, description="Largest clock jump between actions")
    funding_amount: int = Field(default=2_592_000, gt=0, description="Reward per funding, in whole tokens")


class Config(BaseModel):
    """Complete configuration for a bonding program."""
    program: ProgramConfig = Field(default_factory=ProgramConfig)
    lock_tiers: List[LockTierConfig]
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)

    @field_validator('lock_tiers')
    @classmethod
    def validate_tiers(cls, v):
        """At least one tier, unique names."""
        if not v:
            raise ValueError("lock_tiers must not be empty")
        names = [t.name for t in v]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate lock tier names: {names}")
        return v

    @property
    def unit(self) -> int:
        """Base units per whole token."""
        return 10 ** self.program.token_decimals

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump(mode='json')
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump(mode='json')
