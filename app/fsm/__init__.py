"""
Booking Wizard Package

Server-side step machine for the patient booking wizard.

Exports:
- BookingStep: Enum of wizard steps
- VALID_TRANSITIONS / BACK_TRANSITIONS: Step transition rules
- BookingSession: Pydantic model of the whole wizard state
- RedisClient / redis_client: Redis store with CAS support
- BookingSessionManager: Load/save/transition with optimistic locking
- BookingWizard: Step handlers
"""

from .constants import (
    BookingStep,
    CommunicationPreference,
    VALID_TRANSITIONS,
    BACK_TRANSITIONS,
    ACCEPTANCE_STEPS,
    SESSION_TTL,
)
from .models import BookingSession
from .redis_client import RedisClient, redis_client
from .manager import BookingSessionManager
from .step_handlers import BookingWizard

__all__ = [
    'BookingStep',
    'CommunicationPreference',
    'VALID_TRANSITIONS',
    'BACK_TRANSITIONS',
    'ACCEPTANCE_STEPS',
    'SESSION_TTL',
    'BookingSession',
    'RedisClient',
    'redis_client',
    'BookingSessionManager',
    'BookingWizard',
]
