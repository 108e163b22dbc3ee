"""
Prometheus metrics for the scheduling backend.

Everything here lives in its own registry so /metrics can concatenate it with
the booking wizard registry without duplicate collectors.
"""

import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Dict, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

registry = CollectorRegistry()

REQUEST_LATENCY = Histogram(
    'scheduler_request_duration_seconds',
    'Patient booking request duration',
    ['endpoint', 'status'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry
)

# outcome: created, replayed, conflict, not_bookable, error; via: direct, supervised
BOOKINGS = Counter(
    'scheduler_bookings_total',
    'Appointment booking attempts',
    ['outcome', 'via'],
    registry=registry
)

SLOT_SEARCHES = Counter(
    'scheduler_slot_searches_total',
    'Slot availability searches',
    ['payer_kind'],
    registry=registry
)

SLOTS_RETURNED = Histogram(
    'scheduler_slots_returned',
    'Slots returned per availability search',
    buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500),
    registry=registry
)

ROSTER_REBUILDS = Counter(
    'scheduler_roster_rebuilds_total',
    'Bookable roster rebuilds',
    ['trigger'],
    registry=registry
)

ROSTER_CHANGES = Counter(
    'scheduler_roster_changes_total',
    'Roster rows added or removed by rebuilds',
    ['change'],
    registry=registry
)

ROSTER_REBUILD_LATENCY = Histogram(
    'scheduler_roster_rebuild_duration_seconds',
    'Roster rebuild duration',
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=registry
)

ERRORS = Counter(
    'scheduler_errors_total',
    'Unhandled errors by exception class and component',
    ['error_type', 'component'],
    registry=registry
)


def observe_request_latency(endpoint: str, status: str, duration_seconds: float):
    REQUEST_LATENCY.labels(endpoint=endpoint, status=status).observe(duration_seconds)


def observe_booking(outcome: str, via: str = "unknown"):
    BOOKINGS.labels(outcome=outcome, via=via).inc()


def observe_slot_search(payer_kind: str, slot_count: int):
    """payer_kind is "insurance" or "cash"."""
    SLOT_SEARCHES.labels(payer_kind=payer_kind).inc()
    SLOTS_RETURNED.observe(slot_count)


def observe_roster_rebuild(trigger: str, added: int, removed: int, duration_seconds: float):
    ROSTER_REBUILDS.labels(trigger=trigger).inc()
    ROSTER_CHANGES.labels(change="added").inc(added)
    ROSTER_CHANGES.labels(change="removed").inc(removed)
    ROSTER_REBUILD_LATENCY.observe(duration_seconds)


def observe_error(error_type: str, component: str):
    ERRORS.labels(error_type=error_type, component=component).inc()


@contextmanager
def _timed(endpoint: str):
    started = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        observe_request_latency(endpoint, outcome, time.perf_counter() - started)


def track_latency(endpoint: str):
    """Time an async route handler under the given endpoint label."""
    def decorator(handler: Callable) -> Callable:
        @wraps(handler)
        async def wrapper(*args, **kwargs):
            with _timed(endpoint):
                return await handler(*args, **kwargs)
        return wrapper
    return decorator


def get_metrics() -> Tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST


def summarize_registry(source: CollectorRegistry) -> Dict[str, float]:
    """Sum every counter in a registry by sample name."""
    totals: Dict[str, float] = {}
    for metric in source.collect():
        if metric.type != "counter":
            continue
        for sample in metric.samples:
            if sample.name.endswith("_total"):
                totals[sample.name] = totals.get(sample.name, 0.0) + sample.value
    return totals


def get_metrics_summary() -> Dict[str, float]:
    return summarize_registry(registry)
