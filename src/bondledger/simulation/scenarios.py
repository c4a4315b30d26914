"""Predefined multi-depositor scenarios with known reward splits.

Each scenario funds one reward period of R, places actions at fractions of
that period and lists the share of R every depositor should end up with.
Amounts are in whole tokens; N = 100.

Lock ids: 0 = day (+10%), 1 = week (+40%), 2 = two weeks (+100%).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union


@dataclass
class ScenarioAction:
    """One action by one depositor."""
    depositor: str
    action: str  # "deposit", "unbond", "cancel", "withdraw", "claim"
    amount: float = 0.0
    lock: Union[int, str] = 0


@dataclass
class ScenarioStep:
    """Actions executed together at a point in the reward period."""
    at: float  # Fraction of the reward period
    actions: List[ScenarioAction]
    offset_seconds: int = 0


@dataclass
class Scenario:
    """A named scenario with expected reward shares."""
    name: str
    description: str
    steps: List[ScenarioStep]
    expected_shares: Dict[str, float] = field(default_factory=dict)  # depositor -> share of R


BASE = 100.0

SCENARIO_LIBRARY = {
    "equal_split": Scenario(
        name="Equal Split",
        description="Two depositors stake the same amount at the same instant for the whole period",
        steps=[
            ScenarioStep(at=0.0, actions=[
                ScenarioAction("alice", "deposit", BASE, 0),
                ScenarioAction("bob", "deposit", BASE, 0),
            ]),
        ],
        expected_shares={"alice": 0.5, "bob": 0.5},
    ),

    "late_entry": Scenario(
        name="Late Entry",
        description="A stakes at the start, B stakes the same amount half way through",
        steps=[
            ScenarioStep(at=0.0, actions=[ScenarioAction("alice", "deposit", BASE, 0)]),
            ScenarioStep(at=0.5, actions=[ScenarioAction("bob", "deposit", BASE, 0)]),
        ],
        expected_shares={"alice": 0.75, "bob": 0.25},
    ),

    # Staker 1 deposits N at 0, staker 2 N/3 at 0.25, staker 3 2N/3 at 0.5,
    # staker 4 2N at 0.75, all with the one-day lock.
    #
    #              S1      S2      S3      S4
    # T = 0:      100       0       0       0
    # T = 0.25:    75      25       0       0
    # T = 0.5:     50   16.67   33.33       0
    # T = 0.75:    25    8.33   16.67      50
    # Totals:    62.5    12.5    12.5    12.5
    "staggered_entry": Scenario(
        name="Staggered Entry",
        description="Different stake times, same locks, everyone exits after the period",
        steps=[
            ScenarioStep(at=0.0, offset_seconds=5, actions=[
                ScenarioAction("staker1", "deposit", BASE, 0),
            ]),
            ScenarioStep(at=0.25, actions=[ScenarioAction("staker2", "deposit", BASE / 3, 0)]),
            ScenarioStep(at=0.5, actions=[ScenarioAction("staker3", "deposit", BASE / 3 * 2, 0)]),
            ScenarioStep(at=0.75, actions=[ScenarioAction("staker4", "deposit", BASE * 2, 0)]),
        ],
        expected_shares={"staker1": 0.625, "staker2": 0.125, "staker3": 0.125, "staker4": 0.125},
    ),

    # Same timing with different locks:
    # S1 N two weeks (2N), S2 N/3 day (.3667N), S3 2N/3 week (.9333N),
    # S4 2N day (2.2N).
    #
    #              S1      S2      S3      S4
    # T = 0:      100       0       0       0
    # T = 0.25:  84.5    15.5       0       0
    # T = 0.5:   60.6   11.11   28.28       0
    # T = 0.75: 36.36    6.67   16.97      40
    # Totals:   70.37    8.32   11.31      10
    "staggered_locks": Scenario(
        name="Staggered Locks",
        description="Different stake times and different locks, everyone exits after the period",
        steps=[
            ScenarioStep(at=0.0, offset_seconds=5, actions=[
                ScenarioAction("staker1", "deposit", BASE, 2),
            ]),
            ScenarioStep(at=0.25, actions=[ScenarioAction("staker2", "deposit", BASE / 3, 0)]),
            ScenarioStep(at=0.5, actions=[ScenarioAction("staker3", "deposit", BASE / 3 * 2, 1)]),
            ScenarioStep(at=0.75, actions=[ScenarioAction("staker4", "deposit", BASE * 2, 0)]),
        ],
        expected_shares={"staker1": 0.7037, "staker2": 0.0832, "staker3": 0.1131, "staker4": 0.1000},
    ),

    # S1 N two weeks (2N), S2 3N day (3.3N) at 0; S3 2N week (2.8N) and S2
    # unbonds (3N) at 0.25; S4 4N two weeks (8N) and S3 2N day (2.2N) at 0.5;
    # S2 withdraws and S4 unbonds (4N) at 0.75.
    #
    #              S1      S2      S3      S4
    # T = 0:    37.73   62.26       0       0
    # T = 0.25: 25.64   38.46    35.9       0
    # T = 0.5:  11.11   16.67   27.78   44.44
    # T = 0.75: 18.18       0   45.45   36.36
    # Totals:   23.17   29.35   27.28    20.2
    "midstream_exits": Scenario(
        name="Midstream Exits",
        description="Different stake times and locks with unbonding and unstaking mid-period",
        steps=[
            ScenarioStep(at=0.0, offset_seconds=5, actions=[
                ScenarioAction("staker1", "deposit", BASE, 2),
                ScenarioAction("staker2", "deposit", BASE * 3, 0),
            ]),
            ScenarioStep(at=0.25, actions=[
                ScenarioAction("staker3", "deposit", BASE * 2, 1),
                ScenarioAction("staker2", "unbond"),
            ]),
            ScenarioStep(at=0.5, actions=[
                ScenarioAction("staker4", "deposit", BASE * 4, 2),
                ScenarioAction("staker3", "deposit", BASE * 2, 0),
            ]),
            ScenarioStep(at=0.75, actions=[
                ScenarioAction("staker4", "unbond"),
                ScenarioAction("staker2", "withdraw"),
            ]),
        ],
        expected_shares={"staker1": 0.2317, "staker2": 0.2935, "staker3": 0.2728, "staker4": 0.2020},
    ),

    "unbond_and_cancel": Scenario(
        name="Unbond and Cancel",
        description="One depositor unbonds for a quarter of the period and then cancels",
        steps=[
            ScenarioStep(at=0.0, actions=[
                ScenarioAction("alice", "deposit", BASE, 2),
                ScenarioAction("bob", "deposit", BASE * 2, 0),
            ]),
            ScenarioStep(at=0.5, actions=[ScenarioAction("alice", "unbond")]),
            ScenarioStep(at=0.75, actions=[ScenarioAction("alice", "cancel")]),
        ],
        # alice 2N / bob 2.2N, except 0.5-0.75 where alice is N / bob 2.2N
        expected_shares={
            "alice": 0.75 * (2 / 4.2) + 0.25 * (1 / 3.2),
            "bob": 0.75 * (2.2 / 4.2) + 0.25 * (2.2 / 3.2),
        },
    ),
}


def get_scenario(name: str) -> Scenario:
    if name not in SCENARIO_LIBRARY:
        raise ValueError(f"Unknown scenario: {name}")
    return SCENARIO_LIBRARY[name]
