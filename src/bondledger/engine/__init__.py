"""Reward accounting engine and bonding state machine."""

from .accumulator import GlobalState, ProgramStatus, RewardAccumulator
from .assets import AssetTransferService, InMemoryToken
from .clock import ManualClock, SystemClock
from .policy import LockPolicy, LockTier
from .positions import BondState, Position, PositionLedger
from .staking import StakingProgram

__all__ = [
    "AssetTransferService",
    "BondState",
    "GlobalState",
    "InMemoryToken",
    "LockPolicy",
    "LockTier",
    "ManualClock",
    "Position",
    "PositionLedger",
    "ProgramStatus",
    "RewardAccumulator",
    "StakingProgram",
    "SystemClock",
]
