"""Error taxonomy for the staking ledger.

Three tiers, each aborting the whole operation:

- InputError: the caller can fix the request (amounts, ids, wrong state).
- StateError: blocked by the current program phase (paused, terminated,
  no funded period). May clear with time or admin action.
- AccountingInvariantError: the ledger disagrees with itself. Never expected;
  treat the ledger as untrustworthy.
"""

from typing import Optional


class StakingError(Exception):
    """Base class for every ledger error."""


# ============================================================================
# INPUT ERRORS
# ============================================================================

class InputError(StakingError):
    """Caller-correctable error."""


class ZeroAmountError(InputError):
    def __init__(self, what: str = "amount"):
        self.what = what
        super().__init__(f"{what} must be greater than zero")


class DepositTooSmallError(InputError):
    def __init__(self, amount: int, minimum: int):
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Deposit {amount} is below the minimum deposit {minimum}")


class InvalidMinimumDepositError(InputError):
    def __init__(self, minimum: int):
        self.minimum = minimum
        super().__init__(f"Minimum deposit must be non-negative, got {minimum}")


class InvalidLockError(InputError):
    def __init__(self, lock: object, valid: tuple):
        self.lock = lock
        self.valid = valid
        super().__init__(f"Invalid lock tier {lock!r}; expected one of {list(valid)}")


class UnknownPositionError(InputError):
    def __init__(self, depositor: str, position_id: int):
        self.depositor = depositor
        self.position_id = position_id
        super().__init__(f"No position {position_id} for {depositor}")


class PositionClosedError(InputError):
    def __init__(self, depositor: str, position_id: int):
        self.depositor = depositor
        self.position_id = position_id
        super().__init__(f"Position {position_id} of {depositor} is closed")


class AlreadyUnbondingError(InputError):
    def __init__(self, position_id: int, ready_at: int):
        self.position_id = position_id
        self.ready_at = ready_at
        super().__init__(f"Position {position_id} is already unbonding (ready at {ready_at})")


class NotUnbondingError(InputError):
    def __init__(self, position_id: int):
        self.position_id = position_id
        super().__init__(f"Position {position_id} is not unbonding")


class StillLockedError(InputError):
    """Unstake attempted before the cooldown finished (or before unbonding)."""

    def __init__(self, position_id: int, ready_at: Optional[int], now: int):
        self.position_id = position_id
        self.ready_at = ready_at
        self.now = now
        if ready_at is None:
            msg = f"Position {position_id} is locked; unbond it first"
        else:
            msg = f"Position {position_id} is unbonding until {ready_at} (now {now})"
        super().__init__(msg)


class RewardAmountTooSmallError(InputError):
    def __init__(self, amount: int, duration: int):
        self.amount = amount
        self.duration = duration
        super().__init__(
            f"Reward amount {amount} is smaller than the period duration {duration}s; "
            f"the per-second rate would round to zero"
        )


class RewardRateTooLargeError(InputError):
    def __init__(self, rate: int, max_rate: int):
        self.rate = rate
        self.max_rate = max_rate
        super().__init__(f"Reward rate {rate}/s exceeds the maximum settleable rate {max_rate}/s")


class InvalidDurationError(InputError):
    def __init__(self, duration: int, maximum: int):
        self.duration = duration
        self.maximum = maximum
        super().__init__(f"Rewards duration must be in (0, {maximum}], got {duration}")


class UnauthorizedError(InputError):
    def __init__(self, caller: str, role: str):
        self.caller = caller
        self.role = role
        super().__init__(f"{caller} is not the {role}")


class TransferError(InputError):
    """Asset transfer refused (insufficient balance or allowance)."""

    def __init__(self, message: str, account: str, amount: int, available: int):
        self.account = account
        self.amount = amount
        self.available = available
        super().__init__(message)


# ============================================================================
# STATE ERRORS
# ============================================================================

class StateError(StakingError):
    """Operation blocked by the program phase."""


class ProgramPausedError(StateError):
    def __init__(self):
        super().__init__("Program is paused")


class ProgramTerminatedError(StateError):
    def __init__(self):
        super().__init__("Program has been terminated")


class ProgramNotTerminatedError(StateError):
    def __init__(self):
        super().__init__("Emergency paths are only available after termination")


class RewardsNotClaimableError(StateError):
    def __init__(self):
        super().__init__("Rewards were not left claimable at termination")


class RewardsNotFundedError(StateError):
    def __init__(self):
        super().__init__("No reward period has been funded yet")


class NoRewardsLeftError(StateError):
    def __init__(self, period_end: int, now: int):
        self.period_end = period_end
        self.now = now
        super().__init__(f"Reward period ended at {period_end} (now {now})")


class RewardPeriodActiveError(StateError):
    def __init__(self, period_end: int, now: int):
        self.period_end = period_end
        self.now = now
        super().__init__(f"Current reward period runs until {period_end} (now {now})")


class ReentrancyError(StateError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Re-entrant call into {operation}")


# ============================================================================
# ACCOUNTING-INVARIANT ERRORS
# ============================================================================

class AccountingInvariantError(StakingError):
    """The ledger is internally inconsistent."""
