"""Exceptions for htspileup."""


class HtsPileupError(Exception):
    """Base exception for htspileup errors."""


class PileupError(HtsPileupError):
    """Raised when the pileup engine signals that it failed to build a column"""

    def __init__(self, message: str = "error generating pileup"):
        super().__init__(message)


class StaleColumnError(HtsPileupError, ValueError):
    """Raised when a pileup column is used after its sequence has moved on"""

    def __init__(self, position: int):
        self.position = position
        super().__init__(
            f"pileup column at position {position} was accessed after the "
            f"sequence advanced; columns are only valid until the next pull"
        )
