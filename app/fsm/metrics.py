"""
Booking Wizard Prometheus Metrics

- Step transitions by from/to step
- Session creation and completion
- CAS conflicts on concurrent session updates
- Lead submissions by payer acceptance status
"""

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest
import logging

logger = logging.getLogger(__name__)

# Separate registry for wizard metrics
wizard_registry = CollectorRegistry()

# ==============================================================================
# STEP TRANSITION METRICS
# ==============================================================================

wizard_transitions_total = Counter(
    'booking_wizard_transitions_total',
    'Booking wizard step transitions',
    ['from_step', 'to_step'],
    registry=wizard_registry
)

wizard_transition_duration_seconds = Histogram(
    'booking_wizard_transition_duration_seconds',
    'Time spent handling a wizard step',
    ['to_step'],
    registry=wizard_registry,
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0)
)

wizard_invalid_transitions_total = Counter(
    'booking_wizard_invalid_transitions_total',
    'Rejected wizard step transitions',
    ['from_step', 'to_step'],
    registry=wizard_registry
)

# ==============================================================================
# SESSION METRICS
# ==============================================================================

wizard_sessions_created_total = Counter(
    'booking_wizard_sessions_created_total',
    'Booking sessions started',
    registry=wizard_registry
)

wizard_session_conflicts_total = Counter(
    'booking_wizard_session_conflicts_total',
    'CAS version conflicts on booking sessions',
    registry=wizard_registry
)

wizard_leads_total = Counter(
    'booking_wizard_leads_total',
    'Leads submitted for payers that cannot be booked yet',
    ['acceptance_status'],
    registry=wizard_registry
)

# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================

def record_transition(from_step: str, to_step: str, duration_seconds: float):
    """
    Record a wizard step transition.

    Example:
        >>> record_transition("calendar", "insurance_info", 0.08)
    """
    wizard_transitions_total.labels(from_step=from_step, to_step=to_step).inc()
    wizard_transition_duration_seconds.labels(to_step=to_step).observe(duration_seconds)
    logger.debug(f"Wizard transition recorded: {from_step} -> {to_step} ({duration_seconds:.3f}s)")


def record_invalid_transition(from_step: str, to_step: str):
    wizard_invalid_transitions_total.labels(from_step=from_step, to_step=to_step).inc()


def record_session_created():
    wizard_sessions_created_total.inc()


def record_session_conflict(session_id: str):
    wizard_session_conflicts_total.inc()
    logger.warning(f"Booking session CAS conflict: {session_id}")


def record_lead(acceptance_status: str):
    wizard_leads_total.labels(acceptance_status=acceptance_status).inc()


def get_metrics() -> bytes:
    """Wizard metrics in Prometheus text format."""
    return generate_latest(wizard_registry)
