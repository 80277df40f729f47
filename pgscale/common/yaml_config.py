import yaml
from pydantic import ValidationError

from pgscale.common.config import ConfigurationError, ProgressiveConfig


def load_progressive_config(path: str = "config.yaml") -> ProgressiveConfig:
    """Load progressive scaling configuration from a YAML file.

    The section is read from `workload.progressive`, falling back to a
    top-level `progressive` key.

    Args:
        path: Path to the config YAML file

    Returns:
        ProgressiveConfig loaded from the file, or defaults if the file
        doesn't exist or has no progressive section

    Raises:
        ConfigurationError: If the section is present but invalid
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return ProgressiveConfig()

    if not isinstance(data, dict):
        return ProgressiveConfig()

    workload = data.get("workload") or {}
    section = workload.get("progressive") if isinstance(workload, dict) else None
    if section is None:
        section = data.get("progressive")
    if not section:
        return ProgressiveConfig()

    try:
        return ProgressiveConfig(**section)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"invalid progressive configuration in {path}: {e}") from e
