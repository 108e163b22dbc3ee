"""
Application startup and shutdown lifecycle management.

Handles:
- Environment validation
- Redis connection for booking wizard sessions
- Graceful shutdown of Redis and Supabase clients
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from app.database import close_all_clients
from app.fsm import redis_client
from app.startup_validation import validate_environment

logger = logging.getLogger(__name__)


async def init_session_store(app: FastAPI):
    """Connect the booking session store. The admin API keeps working without it."""
    try:
        await redis_client.connect()
        app.state.session_store = redis_client
        logger.info("✅ Booking session store connected")
    except (RedisError, OSError) as e:
        logger.warning(f"Booking session store unavailable, wizard endpoints will fail: {e}")
        app.state.session_store = None


async def close_session_store():
    try:
        await redis_client.close()
    except RedisError as e:
        logger.error(f"Error closing booking session store: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle manager."""
    # === STARTUP ===
    logger.info("Starting scheduling backend...")

    if not validate_environment():
        logger.warning(
            "Environment validation failed - some features may not work. "
            "See logs above for details."
        )

    await init_session_store(app)

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down services...")
    await close_session_store()
    close_all_clients()
    logger.info("Scheduling backend shutdown complete")
