"""
Translate domain exceptions into HTTP errors for the routers.
"""
import logging

from fastapi import HTTPException

from app.exceptions import SchedulerError
from app.observability.metrics import observe_error
from app.schemas.responses import error_response

logger = logging.getLogger(__name__)


def http_error(error: SchedulerError) -> HTTPException:
    """HTTPException carrying the response envelope for a domain error."""
    return HTTPException(
        status_code=error.status_code,
        detail=error_response(error.message, error.details or None),
    )


def internal_error(action: str, error: Exception, component: str = "api") -> HTTPException:
    logger.error(f"Failed to {action}: {error}", exc_info=True)
    observe_error(type(error).__name__, component)
    return HTTPException(status_code=500, detail=error_response(f"Failed to {action}"))
