"""Scenario and Monte Carlo simulation of bonding programs."""

from .monte_carlo import MonteCarloRun, MonteCarloRunner, summarize_runs
from .runner import LedgerSnapshot, ScenarioRunner, SimulationResult
from .scenarios import SCENARIO_LIBRARY, Scenario, ScenarioAction, ScenarioStep, get_scenario

__all__ = [
    "SCENARIO_LIBRARY",
    "LedgerSnapshot",
    "MonteCarloRun",
    "MonteCarloRunner",
    "Scenario",
    "ScenarioAction",
    "ScenarioRunner",
    "ScenarioStep",
    "SimulationResult",
    "get_scenario",
    "summarize_runs",
]
