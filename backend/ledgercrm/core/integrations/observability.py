"""
Observability hooks.
Exceptions and external-registry outcomes are reported through structured logs.
"""

from typing import Optional
from fastapi import Request
import logging

from ledgercrm.core.config import settings

logger = logging.getLogger(__name__)


def setup_observability() -> None:
    """Initialize observability for the service."""
    logger.info(
        "Setting up observability",
        extra={
            "otel_endpoint": settings.OTEL_EXPORTER_OTLP_ENDPOINT,
            "service_name": settings.OTEL_SERVICE_NAME,
        },
    )


def record_exception(exc: Exception, request: Request) -> None:
    """
    Record an exception in the observability backend.

    Args:
        exc: The exception that occurred
        request: The FastAPI request object
    """
    logger.error(
        f"Exception recorded: {type(exc).__name__}",
        extra={
            "exception_message": str(exc),
            "path": request.url.path,
        },
    )


def record_registry_call(registry: str, outcome: str, duration_ms: int, detail: Optional[str] = None) -> None:
    """
    Record the outcome of one outbound registry call.

    Args:
        registry: Registry name ("vies" or "whitelist")
        outcome: "ok", "timeout" or "error"
        duration_ms: Wall time of the call
        detail: Optional error detail
    """
    log = logger.info if outcome == "ok" else logger.warning
    log(
        f"Registry call {registry}: {outcome}",
        extra={
            "registry": registry,
            "outcome": outcome,
            "duration_ms": duration_ms,
            "detail": detail,
        },
    )
