import logging
import re

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigurationError(Exception):
    """Exception raised for invalid scaling configuration."""

    pass


def parse_duration(value: object) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings made of number/unit pairs
    such as "30s", "2m", "1h", "250ms" or "1m30s".

    Args:
        value: Number or duration string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value cannot be parsed or is negative

    Example:
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration(5)
        5.0

    Negative case:
        >>> parse_duration("soon")
        Traceback (most recent call last):
        ValueError: invalid duration: 'soon'
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    raise ValueError(f"invalid duration: {value!r}") from None
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos == 0 or pos != len(text):
                raise ValueError(f"invalid duration: {value!r}") from None
    else:
        raise ValueError(f"invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds


class LogfireConfig(BaseModel):
    token: str | None = None
    service_name: str = "pgscale"
    environment: str = "development"

    @property
    def is_enabled(self) -> bool:
        return bool(self.token)


class ProgressiveConfig(BaseModel):
    """Progressive scaling run configuration.

    Durations are stored in seconds and accept strings like "2m" or "30s".
    Bound ordering (min <= max) is checked by the sequence generator so that
    it surfaces as a ConfigurationError at run start.
    """

    strategy: str = "linear"
    bands: int = 5
    min_workers: int = 1
    max_workers: int = 8
    min_connections: int = 1
    max_connections: int = 8
    step_workers: int | None = None
    step_connections: int | None = None
    test_duration: float = 1800.0
    warmup_duration: float = 60.0
    cooldown_duration: float = 30.0
    enable_analysis: bool = True
    early_termination: bool = False
    max_latency_samples: int = 50000
    sample_interval: float = 5.0
    deadline_margin: float = 10.0
    shutdown_grace: float = 5.0
    results_path: str | None = None

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v) -> str:
        """Lower-case and strip the strategy name."""
        if not isinstance(v, str):
            raise ValueError("strategy must be a string")
        return v.strip().lower()

    @field_validator("bands")
    @classmethod
    def validate_bands(cls, v) -> int:
        """Validate bands is within 1..64."""
        if not 1 <= v <= 64:
            raise ValueError("bands must be between 1 and 64")
        return v

    @field_validator(
        "min_workers",
        "max_workers",
        "min_connections",
        "max_connections",
        "max_latency_samples",
    )
    @classmethod
    def validate_positive(cls, v) -> int:
        """Validate worker and connection bounds are positive."""
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("step_workers", "step_connections")
    @classmethod
    def validate_step(cls, v) -> int | None:
        """Validate explicit steps are positive."""
        if v is not None and v <= 0:
            raise ValueError("step must be greater than 0")
        return v

    @field_validator(
        "test_duration",
        "warmup_duration",
        "cooldown_duration",
        "sample_interval",
        "deadline_margin",
        "shutdown_grace",
        mode="before",
    )
    @classmethod
    def validate_duration(cls, v) -> float:
        """Parse duration strings into seconds."""
        return parse_duration(v)

    @field_validator("test_duration", "sample_interval")
    @classmethod
    def validate_nonzero_duration(cls, v) -> float:
        """Measurement window and sampler interval must be non-zero."""
        if v <= 0:
            raise ValueError("duration must be greater than 0")
        return v


class Settings(BaseSettings):
    log_path: str = "data/logs/pgscale.jsonl"
    export_dir: str = "data/results"
    logfire: LogfireConfig = Field(default_factory=LogfireConfig)
    progressive: ProgressiveConfig = Field(default_factory=ProgressiveConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PGSCALE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("log_path", mode="before")
    @classmethod
    def validate_log_path(cls, v) -> str:
        """Fall back to the default log path when the value is blank."""
        default_path = "data/logs/pgscale.jsonl"
        if v is None or not str(v).strip():
            logger.warning(f"Invalid log_path value: {v!r}. Using default: {default_path}")
            return default_path
        return str(v)
