"""Ledger events, published only after an operation commits."""

from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List


@dataclass(frozen=True)
class Event:
    timestamp: int

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class FundingScheduled(Event):
    amount: int
    reward_rate: int
    period_end: int


@dataclass(frozen=True)
class RewardsDurationUpdated(Event):
    duration: int


@dataclass(frozen=True)
class MinimumDepositUpdated(Event):
    minimum: int


@dataclass(frozen=True)
class Staked(Event):
    depositor: str
    position_id: int
    amount: int
    boosted_amount: int
    lock: str


@dataclass(frozen=True)
class UnbondStarted(Event):
    depositor: str
    position_id: int
    ready_at: int


@dataclass(frozen=True)
class UnbondCancelled(Event):
    depositor: str
    position_id: int


@dataclass(frozen=True)
class Unstaked(Event):
    depositor: str
    position_id: int
    principal: int
    reward: int


@dataclass(frozen=True)
class Claimed(Event):
    depositor: str
    position_id: int
    reward: int


@dataclass(frozen=True)
class PauseChanged(Event):
    paused: bool


@dataclass(frozen=True)
class Terminated(Event):
    rewards_claimable: bool
    swept: int


@dataclass(frozen=True)
class EmergencyWithdrawal(Event):
    depositor: str
    position_id: int
    principal: int


@dataclass(frozen=True)
class EmergencyClaimed(Event):
    depositor: str
    position_id: int
    reward: int


Subscriber = Callable[[Event], None]


class EventLog:
    """Append-only record of committed events with optional subscribers."""

    def __init__(self):
        self.events: List[Event] = []
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, events: List[Event]) -> None:
        for event in events:
            self.events.append(event)
            for subscriber in self._subscribers:
                subscriber(event)

    def of_type(self, event_type: type) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
