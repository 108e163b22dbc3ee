"""
Booking Session Manager

Loads, saves and transitions BookingSession state:
- Sessions persist in Redis with version-checked compare-and-set
- Every step change is validated against VALID_TRANSITIONS
- A stale version on save raises SessionConflictError instead of
  overwriting another tab's progress
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from app.exceptions import InvalidTransitionError, ResourceNotFoundError, SessionConflictError

from .constants import BACK_TRANSITIONS, SESSION_KEY_PREFIX, SESSION_TTL, VALID_TRANSITIONS, BookingStep
from .metrics import record_invalid_transition, record_session_conflict, record_session_created
from .models import BookingSession
from .redis_client import RedisClient, redis_client

logger = logging.getLogger(__name__)


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class BookingSessionManager:
    """
    Session lifecycle for the booking wizard.

    Usage:
        manager = BookingSessionManager()
        session = await manager.create()
        session = manager.transition(session, BookingStep.PAYER_SEARCH)
        session = await manager.save(session)
    """

    def __init__(self, store: Optional[RedisClient] = None):
        self.store = store or redis_client

    async def create(self) -> BookingSession:
        now = datetime.now(timezone.utc)
        session = BookingSession(
            session_id=secrets.token_urlsafe(16),
            current_step=BookingStep.WELCOME,
            history=[BookingStep.WELCOME],
            created_at=now,
            updated_at=now,
        )
        saved = await self.save(session)
        record_session_created()
        logger.info(f"Created booking session {saved.session_id}")
        return saved

    async def load(self, session_id: str) -> BookingSession:
        """
        Raises:
            ResourceNotFoundError: unknown or expired session
        """
        data = await self.store.get(session_key(session_id))
        if not data:
            raise ResourceNotFoundError("Booking session", session_id)
        return BookingSession.model_validate_json(data)

    async def save(self, session: BookingSession) -> BookingSession:
        """
        Persist with CAS on the loaded version and return the stored copy.

        Raises:
            SessionConflictError: the session changed since it was loaded
        """
        new_session = session.model_copy(deep=True)
        new_session.version = session.version + 1
        new_session.updated_at = datetime.now(timezone.utc)

        stored = await self.store.cas_set(
            key=session_key(session.session_id),
            expected_version=session.version,
            new_value=new_session.model_dump_json(),
            ttl=SESSION_TTL,
        )
        if not stored:
            record_session_conflict(session.session_id)
            raise SessionConflictError(session.session_id)

        logger.debug(
            f"Saved booking session {session.session_id}: "
            f"version {session.version} -> {new_session.version}, step={new_session.current_step.value}"
        )
        return new_session

    def validate_transition(self, from_step: BookingStep, to_step: BookingStep) -> None:
        if to_step not in VALID_TRANSITIONS.get(from_step, []):
            record_invalid_transition(from_step.value, to_step.value)
            raise InvalidTransitionError(from_step.value, to_step.value)

    def require_step(self, session: BookingSession, *steps: BookingStep, action: str) -> None:
        """Reject a step action issued from the wrong step."""
        if session.current_step not in steps:
            record_invalid_transition(session.current_step.value, action)
            raise InvalidTransitionError(session.current_step.value, action)

    def transition(self, session: BookingSession, to_step: BookingStep) -> BookingSession:
        """Validated copy of `session` moved to `to_step` (not yet saved)."""
        self.validate_transition(session.current_step, to_step)

        updated = session.model_copy(deep=True)
        updated.current_step = to_step
        updated.history.append(to_step)

        logger.info(
            f"Booking session {session.session_id}: {session.current_step.value} -> {to_step.value}"
        )
        return updated

    def back(self, session: BookingSession) -> BookingSession:
        target = BACK_TRANSITIONS.get(session.current_step)
        if target is None:
            record_invalid_transition(session.current_step.value, "back")
            raise InvalidTransitionError(session.current_step.value, "back")
        return self.transition(session, target)
