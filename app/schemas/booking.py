"""
Request models for patient booking: slot search, appointment creation and
the booking wizard steps.

Patient input is validated and normalized here before any service sees it.
"""
import re
import uuid
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.config import (
    BOOKING_PAST_TOLERANCE_MINUTES,
    CASH_PAYER_ID,
    DEFAULT_APPOINTMENT_DURATION,
    DURATION_TOLERANCE_MINUTES,
)
from app.utils.timezone_utils import parse_datetime

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}$")
NAME_PATTERN = r"^[a-zA-Z\s'-]+$"
CODE_PATTERN = r"^[a-zA-Z0-9-]+$"
REFERRAL_PATTERN = r"^[a-zA-Z0-9_-]+$"

MAX_DOB_AGE_YEARS = 120


class BookingScenario(str, Enum):
    SELF = "self"
    REFERRAL = "referral"
    CASE_MANAGER = "case-manager"


class LocationType(str, Enum):
    TELEHEALTH = "telehealth"
    IN_OFFICE = "in-office"


def _check_uuid(value: str, label: str) -> str:
    try:
        uuid.UUID(value)
    except ValueError:
        raise ValueError(f"Invalid {label} ID format")
    return value


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


def normalize_phone(value: str) -> str:
    value = value.strip()
    if not PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone format. Use format: (555) 555-5555")
    return re.sub(r"\D", "", value)


# =============================================================================
# Shared pieces
# =============================================================================

class PatientInfo(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    last_name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    email: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=10, max_length=20)
    date_of_birth: date

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, v):
        today = date.today()
        if v >= today:
            raise ValueError("Date of birth must be in the past")
        try:
            oldest = today.replace(year=today.year - MAX_DOB_AGE_YEARS)
        except ValueError:
            # Feb 29 on a non-leap target year
            oldest = today.replace(year=today.year - MAX_DOB_AGE_YEARS, day=28)
        if v <= oldest:
            raise ValueError("Invalid date of birth")
        return v


class RoiContact(BaseModel):
    """Release-of-information contact"""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=1, max_length=255)
    relationship: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else None


class CaseManagerInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    organization: Optional[str] = Field(None, max_length=200)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else None


class InsuranceDetails(BaseModel):
    member_id: Optional[str] = Field(None, max_length=50, pattern=CODE_PATTERN)
    group_number: Optional[str] = Field(None, max_length=50, pattern=CODE_PATTERN)
    plan_name: Optional[str] = Field(None, max_length=100)


# =============================================================================
# Slot search
# =============================================================================

class SlotSearchRequest(BaseModel):
    payer_id: str = Field(..., min_length=1)
    start_date: date
    end_date: Optional[date] = None
    duration_minutes: int = Field(DEFAULT_APPOINTMENT_DURATION, ge=15, le=240)
    provider_id: Optional[str] = None
    language: Optional[str] = Field(None, max_length=50)


# =============================================================================
# Appointment creation
# =============================================================================

class AppointmentCreateRequest(BaseModel):
    provider_id: str
    payer_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(..., ge=15, le=240)
    insurance: InsuranceDetails = Field(default_factory=InsuranceDetails)
    location_type: LocationType = LocationType.TELEHEALTH
    notes: Optional[str] = Field(None, max_length=1000)
    patient: PatientInfo
    roi_contacts: List[RoiContact] = Field(default_factory=list, max_length=10)
    booking_scenario: BookingScenario = BookingScenario.SELF
    case_manager: Optional[CaseManagerInfo] = None
    referral_code: Optional[str] = Field(None, max_length=50, pattern=REFERRAL_PATTERN)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)

    @field_validator("provider_id")
    @classmethod
    def validate_provider_id(cls, v):
        return _check_uuid(v, "provider")

    @field_validator("payer_id")
    @classmethod
    def validate_payer_id(cls, v):
        if v is None or v == CASH_PAYER_ID:
            return v
        return _check_uuid(v, "payer")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_datetime(cls, v):
        try:
            return parse_datetime(v)
        except (TypeError, ValueError):
            raise ValueError("Invalid datetime format. Use ISO format.")

    @field_validator("start_time")
    @classmethod
    def validate_not_past(cls, v):
        earliest = datetime.now(timezone.utc) - timedelta(minutes=BOOKING_PAST_TOLERANCE_MINUTES)
        if v < earliest:
            raise ValueError("Cannot book appointments in the past")
        return v

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        span = round((self.end_time - self.start_time).total_seconds() / 60)
        if abs(span - self.duration_minutes) > DURATION_TOLERANCE_MINUTES:
            raise ValueError("Duration does not match start/end times")
        if self.booking_scenario == BookingScenario.CASE_MANAGER and self.case_manager is None:
            raise ValueError("case_manager is required for case-manager bookings")
        return self


# =============================================================================
# Booking wizard steps
# =============================================================================

class ScenarioSelection(BaseModel):
    scenario: BookingScenario
    case_manager: Optional[CaseManagerInfo] = None
    referral_code: Optional[str] = Field(None, max_length=50, pattern=REFERRAL_PATTERN)


class PayerSelection(BaseModel):
    payer_id: str = Field(..., min_length=1)


class SlotSelection(BaseModel):
    provider_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(DEFAULT_APPOINTMENT_DURATION, ge=15, le=240)


class InsuranceStep(BaseModel):
    patient: PatientInfo
    insurance: InsuranceDetails = Field(default_factory=InsuranceDetails)
    location_type: LocationType = LocationType.TELEHEALTH
    notes: Optional[str] = Field(None, max_length=1000)


class RoiStep(BaseModel):
    contacts: List[RoiContact] = Field(default_factory=list, max_length=10)


class LeadSubmission(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else None


class ConfirmRequest(BaseModel):
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)
