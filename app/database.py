"""
Supabase access for the scheduler.

Every router obtains its client through get_db() so tests can swap in an
in-memory PostgREST double with app.dependency_overrides. Nothing else in the
project calls create_client.
"""
import os
import logging
from typing import Any, Dict, List, Optional

import httpx
from supabase import create_client, Client
from supabase.client import ClientOptions

logger = logging.getLogger(__name__)

# Scheduling tables all live in the public schema
SCHEDULER_SCHEMA = "public"

# PostgREST transport (seconds)
QUERY_TIMEOUT = 30.0
CONNECT_TIMEOUT = 10.0
POOL_SIZE = 50
KEEPALIVE_POOL_SIZE = 10

_client: Optional[Client] = None
_transport: Optional[httpx.Client] = None


def _service_credentials() -> tuple:
    url = os.getenv("SUPABASE_URL")
    # Admin writes need the service role; the anon key only works for read-only demos
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return url, key


def _postgrest_transport() -> httpx.Client:
    """HTTP/1.1 session shared by all PostgREST calls."""
    return httpx.Client(
        http2=False,
        timeout=httpx.Timeout(QUERY_TIMEOUT, connect=CONNECT_TIMEOUT),
        limits=httpx.Limits(
            max_connections=POOL_SIZE,
            max_keepalive_connections=KEEPALIVE_POOL_SIZE,
        ),
        follow_redirects=True,
    )


def get_scheduler_client() -> Client:
    """Lazily build the process-wide scheduler client."""
    global _client, _transport

    if _client is not None:
        return _client

    url, key = _service_credentials()
    client = create_client(
        url,
        key,
        options=ClientOptions(
            schema=SCHEDULER_SCHEMA,
            auto_refresh_token=False,
            persist_session=False,
        ),
    )

    postgrest = getattr(client, "_postgrest", None)
    if postgrest is not None and hasattr(postgrest, "session"):
        _transport = _postgrest_transport()
        postgrest.session = _transport
    else:
        logger.warning("PostgREST session not replaceable, using library defaults")

    _client = client
    logger.info("Scheduler database client ready (schema=%s)", SCHEDULER_SCHEMA)
    return client


def get_db() -> Client:
    """FastAPI dependency returning the scheduling database client."""
    return get_scheduler_client()


def close_all_clients() -> None:
    """Release the cached client and its HTTP pool on shutdown."""
    global _client, _transport

    if _transport is not None:
        _transport.close()
    _client = None
    _transport = None
    logger.info("Scheduler database client closed")


def rows_of(result) -> List[Dict[str, Any]]:
    """Rows of a PostgREST response, never None."""
    return result.data or []


def first_row(result) -> Optional[Dict[str, Any]]:
    """First row of a query result, or None."""
    rows = rows_of(result)
    return rows[0] if rows else None
