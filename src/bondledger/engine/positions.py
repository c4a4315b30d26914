"""Position ledger and the per-deposit bonding state machine.

Each depositor owns an append-only list of positions; the list index is the
position id. Positions are never removed, only closed (principal and boost
zeroed).

State machine:

    ACTIVE_LOCKED --unbond--> UNBONDING --(cooldown)--> WITHDRAWABLE
          ^                       |                          |
          +-------cancel----------+----------cancel----------+
                                                             |
                                      CLOSED <---unstake-----+
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .accumulator import GlobalState
from .errors import (
    AccountingInvariantError,
    AlreadyUnbondingError,
    NotUnbondingError,
    PositionClosedError,
    StillLockedError,
    UnknownPositionError,
)
from .fixed_point import SCALE, mul_div
from .policy import LockTier

logger = logging.getLogger(__name__)
invariant_logger = logging.getLogger("bondledger.invariants")


class BondState(str, Enum):
    ACTIVE_LOCKED = "active_locked"
    UNBONDING = "unbonding"
    WITHDRAWABLE = "withdrawable"
    CLOSED = "closed"


@dataclass
class Position:
    """A single deposit."""
    depositor: str
    position_id: int
    principal: int
    boosted_principal: int
    lock: LockTier
    accumulator_snapshot: int = 0
    unclaimed_reward: int = 0
    unbond_ready_at: int = 0  # 0 while locked
    opened_at: int = 0

    @property
    def closed(self) -> bool:
        return self.principal == 0 and self.boosted_principal == 0

    def state(self, now: int) -> BondState:
        if self.closed:
            return BondState.CLOSED
        if self.unbond_ready_at == 0:
            return BondState.ACTIVE_LOCKED
        if now >= self.unbond_ready_at:
            return BondState.WITHDRAWABLE
        return BondState.UNBONDING

    def pending_reward(self, accumulator: int) -> int:
        """Reward earned since the last snapshot, rounded down."""
        return mul_div(self.boosted_principal, accumulator - self.accumulator_snapshot, SCALE)


def fail_invariant(message: str) -> AccountingInvariantError:
    """Log a broken accounting invariant and build the error to raise."""
    invariant_logger.critical("Accounting invariant violated: %s", message)
    return AccountingInvariantError(message)


class PositionLedger:
    """Per-depositor positions plus the global principal totals they feed."""

    def __init__(self, state: GlobalState):
        self.state = state
        self._positions: Dict[str, List[Position]] = defaultdict(list)
        # Pre-operation copies of every depositor touched while journaling
        self._journal: Optional[Dict[str, List[Position]]] = None

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def begin(self) -> None:
        self._journal = {}

    def commit(self) -> None:
        self._journal = None

    def rollback(self) -> None:
        """Restore every depositor touched since begin()."""
        if self._journal is None:
            return
        for depositor, saved in self._journal.items():
            if saved:
                self._positions[depositor] = saved
            else:
                self._positions.pop(depositor, None)
        self._journal = None

    def _touch(self, depositor: str) -> None:
        if self._journal is not None and depositor not in self._journal:
            self._journal[depositor] = [replace(p) for p in self._positions.get(depositor, [])]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, depositor: str, position_id: int) -> Position:
        self._touch(depositor)
        positions = self._positions.get(depositor, [])
        if not isinstance(position_id, int) or not 0 <= position_id < len(positions):
            raise UnknownPositionError(depositor, position_id)
        return positions[position_id]

    def get_open(self, depositor: str, position_id: int) -> Position:
        position = self.get(depositor, position_id)
        if position.closed:
            raise PositionClosedError(depositor, position_id)
        return position

    def positions_of(self, depositor: str) -> List[Position]:
        self._touch(depositor)
        return list(self._positions.get(depositor, []))

    def depositors(self) -> List[str]:
        return list(self._positions)

    def __iter__(self) -> Iterator[Position]:
        for positions in self._positions.values():
            yield from positions

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @staticmethod
    def settle(position: Position, accumulator: int) -> int:
        """
        Move earned reward into unclaimed_reward and re-snapshot.

        Returns:
            Reward credited by this settlement
        """
        if accumulator < position.accumulator_snapshot:
            raise fail_invariant(
                f"accumulator {accumulator} is behind snapshot "
                f"{position.accumulator_snapshot} of position {position.position_id}"
            )
        earned = position.pending_reward(accumulator)
        position.unclaimed_reward += earned
        position.accumulator_snapshot = accumulator
        return earned

    # ------------------------------------------------------------------
    # Transitions (caller settles the position first)
    # ------------------------------------------------------------------

    def open(self, depositor: str, amount: int, tier: LockTier, accumulator: int, now: int) -> Position:
        self._touch(depositor)
        boosted = tier.boosted(amount)
        position = Position(
            depositor=depositor,
            position_id=len(self._positions[depositor]),
            principal=amount,
            boosted_principal=boosted,
            lock=tier,
            accumulator_snapshot=accumulator,
            opened_at=now,
        )
        self._positions[depositor].append(position)
        self._credit(amount, boosted)
        logger.debug(
            "Opened position %s/%d: principal=%d boosted=%d lock=%s",
            depositor, position.position_id, amount, boosted, tier.name
        )
        return position

    def begin_unbonding(self, position: Position, now: int) -> int:
        """Strip the boost and start the cooldown. Returns the ready time."""
        if position.unbond_ready_at != 0:
            raise AlreadyUnbondingError(position.position_id, position.unbond_ready_at)
        delta = position.boosted_principal - position.principal
        self._debit_boost(delta)
        position.boosted_principal = position.principal
        position.unbond_ready_at = now + position.lock.cooldown
        logger.debug(
            "Position %s/%d unbonding until %d (boost -%d)",
            position.depositor, position.position_id, position.unbond_ready_at, delta
        )
        return position.unbond_ready_at

    def cancel_unbonding(self, position: Position) -> int:
        """Reinstate the boost and clear the cooldown. Returns the restored delta."""
        if position.unbond_ready_at == 0:
            raise NotUnbondingError(position.position_id)
        boosted = position.lock.boosted(position.principal)
        delta = boosted - position.boosted_principal
        position.boosted_principal = boosted
        position.unbond_ready_at = 0
        self.state.total_boosted_principal += delta
        logger.debug(
            "Position %s/%d unbonding cancelled (boost +%d)",
            position.depositor, position.position_id, delta
        )
        return delta

    def check_withdrawable(self, position: Position, now: int) -> None:
        if position.unbond_ready_at == 0:
            raise StillLockedError(position.position_id, None, now)
        if now < position.unbond_ready_at:
            raise StillLockedError(position.position_id, position.unbond_ready_at, now)

    def close(self, position: Position) -> Tuple[int, int]:
        """
        Zero the position and take it out of the global totals.

        Returns:
            (principal, unclaimed_reward) owed to the depositor; the
            position's unclaimed_reward is zeroed.
        """
        principal = position.principal
        reward = position.unclaimed_reward
        self._debit(principal, position.boosted_principal)
        position.principal = 0
        position.boosted_principal = 0
        position.unclaimed_reward = 0
        position.unbond_ready_at = 0
        return principal, reward

    def withdraw_principal(self, position: Position) -> int:
        """Zero principal but keep unclaimed reward (emergency exit)."""
        principal = position.principal
        self._debit(principal, position.boosted_principal)
        position.principal = 0
        position.boosted_principal = 0
        return principal

    def take_reward(self, position: Position) -> int:
        reward = position.unclaimed_reward
        position.unclaimed_reward = 0
        return reward

    # ------------------------------------------------------------------
    # Global totals
    # ------------------------------------------------------------------

    def _credit(self, principal: int, boosted: int) -> None:
        self.state.total_principal += principal
        self.state.total_boosted_principal += boosted

    def _debit(self, principal: int, boosted: int) -> None:
        s = self.state
        if boosted > s.total_boosted_principal or principal > s.total_principal:
            raise fail_invariant(
                f"removing principal={principal} boosted={boosted} exceeds totals "
                f"principal={s.total_principal} boosted={s.total_boosted_principal}"
            )
        s.total_principal -= principal
        s.total_boosted_principal -= boosted

    def _debit_boost(self, delta: int) -> None:
        s = self.state
        if delta < 0 or delta > s.total_boosted_principal - s.total_principal:
            raise fail_invariant(
                f"removing boost {delta} exceeds credited boost "
                f"{s.total_boosted_principal - s.total_principal}"
            )
        s.total_boosted_principal -= delta

    def check_totals(self) -> None:
        """Cheap O(1) consistency check of the global totals."""
        s = self.state
        if (s.total_principal == 0) != (s.total_boosted_principal == 0):
            raise fail_invariant(
                f"principal={s.total_principal} and boosted={s.total_boosted_principal} "
                f"must be zero together"
            )
        if s.total_boosted_principal < s.total_principal:
            raise fail_invariant(
                f"boosted total {s.total_boosted_principal} below principal total {s.total_principal}"
            )
