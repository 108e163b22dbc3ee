"""Prometheus instrumentation for bookings, slot searches, roster rebuilds and errors."""

from .metrics import (
    get_metrics,
    get_metrics_summary,
    observe_booking,
    observe_error,
    observe_roster_rebuild,
    observe_slot_search,
    track_latency,
)

__all__ = [
    'get_metrics',
    'get_metrics_summary',
    'observe_booking',
    'observe_error',
    'observe_roster_rebuild',
    'observe_slot_search',
    'track_latency',
]
