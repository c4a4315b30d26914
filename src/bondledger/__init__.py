"""bondledger - time-weighted reward accounting for bonded staking programs."""

__version__ = "0.3.0"
