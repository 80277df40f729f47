"""Exception classes for scaling runs."""


class ScalingError(Exception):
    """Base exception for scaling run errors."""

    pass


class BandExecutionError(ScalingError):
    """Raised when a band fails during warmup or measurement.

    A band failure aborts the whole run; it is never retried.
    """

    def __init__(self, message: str, band_id: int, state: str) -> None:
        self.band_id = band_id
        self.state = state
        super().__init__(message)


class ScalingCancelledError(ScalingError):
    """Raised when cancellation interrupts a band.

    Not a failure: the engine catches it and finalizes over the bands
    that completed.
    """

    def __init__(self, message: str, band_id: int | None = None) -> None:
        self.band_id = band_id
        super().__init__(message)
