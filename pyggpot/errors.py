"""
Error taxonomy for pot operations
"""


class PotError(Exception):
    """Base class for all pot ledger errors"""
    pass


class ValidationError(PotError, ValueError):
    """Malformed caller input (bad denomination, negative count, bad pot id)"""
    pass


class StoreError(PotError):
    """Transaction begin/read/write/commit failure in a storage backend"""
    pass


class ConsistencyError(PotError):
    """
    Aggregate and row-level bookkeeping disagree.

    Raised when the sampler selects a denomination for which no row with a
    positive count exists. Indicates a bug, never a caller mistake.
    """
    pass
