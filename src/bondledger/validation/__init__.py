"""Validation and sanity checks for bonding programs."""

from .sanity_checks import SanityChecker, ValidationWarning, check_config_inputs, validate_simulation_results

__all__ = [
    "SanityChecker",
    "ValidationWarning",
    "check_config_inputs",
    "validate_simulation_results"
]
