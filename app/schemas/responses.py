"""
JSON envelope shared by every endpoint.

Success bodies are {"success": true, "data": ...} with optional message and
meta keys; failures are {"success": false, "error": ..., "details"?: ...}.
"""
from datetime import datetime, timezone
from math import ceil
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    services: Dict[str, str] = Field(default_factory=dict)


def success_response(data: Any, message: Optional[str] = None, **extra: Any) -> dict:
    """Wrap ``data``; extra keyword arguments become top-level keys such as ``meta``."""
    body = {"success": True, "data": data, **extra}
    if message:
        body["message"] = message
    return body


def error_response(message: str, details: Optional[dict] = None) -> dict:
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body


def paginated_response(rows: List[Any], total: int, page: int, per_page: int) -> dict:
    """One page of a list endpoint; pages are 1-indexed."""
    total_pages = ceil(total / per_page) if per_page else 0
    return {
        "success": True,
        "data": rows,
        "pagination": {"page": page, "per_page": per_page, "total": total, "total_pages": total_pages},
    }
