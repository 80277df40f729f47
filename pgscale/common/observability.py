import contextlib
import logging
from typing import Any

from pgscale.common.config import Settings

logger = logging.getLogger(__name__)

_LOGFIRE_INITIALIZED = False


def init_logfire(settings: Settings) -> bool:
    """Initialize Logfire tracing if a token is configured.

    Args:
        settings: Application settings containing Logfire configuration

    Returns:
        True if Logfire was initialized successfully, False otherwise

    Negative case:
        Invalid token or missing package -> logs error, returns False
    """
    global _LOGFIRE_INITIALIZED

    if _LOGFIRE_INITIALIZED:
        return True

    if not settings.logfire.is_enabled:
        return False

    try:
        import logfire

        logfire.configure(
            token=settings.logfire.token,
            service_name=settings.logfire.service_name,
            environment=settings.logfire.environment,
        )

        _LOGFIRE_INITIALIZED = True
        logger.info(
            f"Logfire initialized: service={settings.logfire.service_name}, "
            f"environment={settings.logfire.environment}"
        )
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}")
        return False


def is_logfire_enabled() -> bool:
    return _LOGFIRE_INITIALIZED


def span(name: str, **attributes: Any) -> contextlib.AbstractContextManager:
    """Open a Logfire span, or a no-op context when Logfire is not initialized."""
    if not _LOGFIRE_INITIALIZED:
        return contextlib.nullcontext()

    import logfire

    return logfire.span(name, **attributes)
