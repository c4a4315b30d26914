"""Program configuration."""

from .loader import config_from_dict, load_config
from .schema import Config, LockTierConfig, ProgramConfig, SimulationConfig

__all__ = [
    "Config",
    "LockTierConfig",
    "ProgramConfig",
    "SimulationConfig",
    "config_from_dict",
    "load_config",
]
