"""
Scheduling Backend - Main Application
Admin back-office for contracts and supervision, plus patient booking
"""

import logging

from dotenv import load_dotenv

# Load environment variables FIRST before importing modules that need them
load_dotenv()

from app.utils.logging_config import configure_logging  # noqa: E402
configure_logging()

from app.app_factory import create_app  # noqa: E402
from app.routers_registry import register_all_routers  # noqa: E402
from app.schemas.responses import HealthResponse  # noqa: E402
from app.fsm import redis_client  # noqa: E402

logger = logging.getLogger(__name__)

app = create_app()
register_all_routers(app)


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Liveness probe; reports whether the booking session store is connected."""
    return HealthResponse(
        services={"session_store": "connected" if redis_client.is_connected else "disconnected"}
    )


@app.get("/", tags=["health"])
async def root():
    return {"service": "scheduling-backend", "docs": "/docs", "health": "/health"}
