"""Exception classes for scaling analysis."""


class StatisticalError(Exception):
    """Base exception for analysis errors."""

    pass


class InsufficientDataError(StatisticalError):
    """Raised when too few bands are available for an analysis."""

    def __init__(self, message: str, min_required: int | None = None) -> None:
        self.min_required = min_required
        super().__init__(message)
