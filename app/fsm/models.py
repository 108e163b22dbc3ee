"""
Booking Wizard Models

BookingSession is the whole wizard state, stored as JSON in Redis and updated
with version-checked compare-and-set.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import BookingStep, CommunicationPreference


class BookingSession(BaseModel):
    """
    Complete wizard state for one patient booking attempt.

    Attributes:
        session_id: Opaque session identifier handed to the client
        current_step: Step the patient is on
        version: Optimistic lock version (incremented on each save)
        history: Steps visited, oldest first
        scenario: self, referral or case-manager
        payer: Selected payer with its acceptance_status
        slot: Selected slot (provider, start/end, duration)
        patient / insurance: Intake details
        roi_contacts: Release-of-information contacts
        appointment_id / confirmation_code: Set once the booking is created
        lead_id: Set once a waitlist/out-of-network lead is submitted
    """
    session_id: str = Field(..., min_length=1)
    current_step: BookingStep = BookingStep.WELCOME
    version: int = Field(default=0, ge=0)
    history: List[BookingStep] = Field(default_factory=list)

    scenario: Optional[str] = None
    communication_preference: Optional[CommunicationPreference] = None
    case_manager: Optional[Dict[str, Any]] = None
    referral_code: Optional[str] = None

    payer: Optional[Dict[str, Any]] = None
    acceptance_status: Optional[str] = None
    slot: Optional[Dict[str, Any]] = None
    patient: Optional[Dict[str, Any]] = None
    insurance: Optional[Dict[str, Any]] = None
    location_type: Optional[str] = None
    notes: Optional[str] = None
    roi_contacts: List[Dict[str, Any]] = Field(default_factory=list)

    appointment_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    lead_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    @field_validator('created_at', 'updated_at')
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure timestamps are timezone-aware (UTC)."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_complete(self) -> bool:
        return self.current_step == BookingStep.CONFIRMATION

    def to_public(self) -> Dict[str, Any]:
        """Client-facing view."""
        data = self.model_dump(mode="json")
        data["is_complete"] = self.is_complete
        return data
