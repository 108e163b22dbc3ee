"""
Builds the scheduler's FastAPI instance: docs, CORS, booking throttling and
the JSON error envelope shared by every route.
"""
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.exceptions import SchedulerError
from app.middleware.rate_limiter import booking_limiter
from app.schemas.responses import error_response
from app.startup import lifespan

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Scheduling backend for a behavioral health practice.

Admin routes (`/api/admin`) manage organizations, provider/payer contracts,
attending supervision and the bookable roster, and require a Bearer token
with role `admin` or an allow-listed e-mail. Patient routes
(`/api/patient-booking`, `/api/booking-sessions`) are public and throttled.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness"},
    {"name": "admin", "description": "Back-office administration"},
    {"name": "patient-booking", "description": "Payer lookup, slots and appointments"},
    {"name": "booking-sessions", "description": "Server-side booking wizard"},
    {"name": "observability", "description": "Prometheus metrics"},
]

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"


def _openapi_with_bearer(app: FastAPI):
    def openapi():
        if app.openapi_schema is None:
            schema = get_openapi(
                title=app.title,
                version=app.version,
                description=app.description,
                routes=app.routes,
                tags=OPENAPI_TAGS,
            )
            schema.setdefault("components", {})["securitySchemes"] = {
                "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
            }
            app.openapi_schema = schema
        return app.openapi_schema

    return openapi


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _validation_message(errors: list) -> str:
    """First validation problem as "field: message"."""
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return f"{field}: {message}" if field else message


def register_error_handlers(app: FastAPI):
    """Every failure leaves the API as {"success": false, "error": ...}."""

    @app.exception_handler(SchedulerError)
    async def on_scheduler_error(request: Request, exc: SchedulerError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, exc.details or None),
        )

    @app.exception_handler(RequestValidationError)
    async def on_invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        details = {"errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in errors
        ]}
        return JSONResponse(status_code=400, content=error_response(_validation_message(errors), details))

    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException):
        # Routers pass pre-built envelopes as detail
        if isinstance(exc.detail, dict) and "success" in exc.detail:
            content = exc.detail
        else:
            content = error_response(str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Scheduling Backend",
        description=API_DESCRIPTION,
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.openapi = _openapi_with_bearer(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def throttle_patient_booking(request: Request, call_next):
        return await booking_limiter(request, call_next)

    register_error_handlers(app)
    return app
