"""Lock/boost policy - maps a lock tier to its reward boost and cooldown.

Key Concepts:
- boost is a scaled ratio: boosted = amount + amount * boost / SCALE
- cooldown is the unbonding wait in seconds, fixed per tier
- tiers are addressed by index (0 = shortest) or by name
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple, Union

from .errors import InvalidLockError
from .fixed_point import mul_fixed, to_fixed

ONE_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class LockTier:
    """One selectable lock commitment."""
    index: int
    name: str
    boost: int  # Scaled by SCALE
    cooldown: int  # Seconds

    def boosted(self, amount: int) -> int:
        """Boosted principal for amount, rounded down."""
        return amount + mul_fixed(amount, self.boost)


class LockPolicy:
    """Immutable lookup table of lock tiers."""

    def __init__(self, tiers: Iterable[LockTier]):
        self._tiers: Tuple[LockTier, ...] = tuple(sorted(tiers, key=lambda t: t.index))
        if not self._tiers:
            raise ValueError("Lock policy needs at least one tier")
        indexes = [t.index for t in self._tiers]
        if indexes != list(range(len(indexes))):
            raise ValueError(f"Lock tier indexes must be contiguous from 0, got {indexes}")
        names = [t.name for t in self._tiers]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate lock tier names: {names}")

    @classmethod
    def from_config(cls, tier_configs) -> "LockPolicy":
        """Build from the lock_tiers section of the config."""
        return cls(
            LockTier(
                index=i,
                name=tc.name,
                boost=to_fixed(tc.boost),
                cooldown=tc.cooldown_seconds,
            )
            for i, tc in enumerate(tier_configs)
        )

    @classmethod
    def default(cls) -> "LockPolicy":
        """One day (10%), one week (40%) and two weeks (100%)."""
        return cls([
            LockTier(0, "day", to_fixed("0.1"), ONE_DAY),
            LockTier(1, "week", to_fixed("0.4"), 7 * ONE_DAY),
            LockTier(2, "two_weeks", to_fixed("1.0"), 14 * ONE_DAY),
        ])

    @property
    def tiers(self) -> List[LockTier]:
        return list(self._tiers)

    def resolve(self, lock: Union[int, str, LockTier]) -> LockTier:
        """
        Look up a tier by index or name.

        Raises:
            InvalidLockError: If no tier matches
        """
        if isinstance(lock, LockTier):
            lock = lock.index
        # bool is an int subclass; reject it explicitly
        if isinstance(lock, int) and not isinstance(lock, bool):
            if 0 <= lock < len(self._tiers):
                return self._tiers[lock]
        elif isinstance(lock, str):
            for tier in self._tiers:
                if tier.name == lock:
                    return tier
        raise InvalidLockError(lock, tuple(t.name for t in self._tiers))

    def boost(self, lock: Union[int, str]) -> int:
        return self.resolve(lock).boost

    def cooldown(self, lock: Union[int, str]) -> int:
        return self.resolve(lock).cooldown

    def __len__(self) -> int:
        return len(self._tiers)
