"""Request and response models for the admin and patient APIs."""

from app.schemas.responses import (
    HealthResponse,
    error_response,
    paginated_response,
    success_response,
)

__all__ = [
    "HealthResponse",
    "error_response",
    "paginated_response",
    "success_response",
]
