"""
Booking Wizard Constants

Steps of the patient booking wizard and the transitions allowed between them.
"""

from enum import Enum

from app.config import BOOKING_SESSION_TTL
from app.models.scheduling import AcceptanceStatus


class BookingStep(str, Enum):
    """
    Wizard steps.

    Main flow:
    WELCOME -> PAYER_SEARCH -> CALENDAR -> INSURANCE_INFO -> ROI -> CONFIRMATION

    Payers the practice cannot book yet divert to INSURANCE_NOT_ACCEPTED,
    INSURANCE_FUTURE or WAITLIST, which end in CONFIRMATION once a lead is
    submitted.
    """
    WELCOME = "welcome"
    PAYER_SEARCH = "payer_search"
    INSURANCE_NOT_ACCEPTED = "insurance_not_accepted"
    INSURANCE_FUTURE = "insurance_future"
    WAITLIST = "waitlist"
    CALENDAR = "calendar"
    INSURANCE_INFO = "insurance_info"
    ROI = "roi"
    CONFIRMATION = "confirmation"


class CommunicationPreference(str, Enum):
    PATIENT = "patient"
    CASE_MANAGER = "case_manager"


# Forward and back moves; CONFIRMATION is terminal
VALID_TRANSITIONS = {
    BookingStep.WELCOME: [BookingStep.PAYER_SEARCH],
    BookingStep.PAYER_SEARCH: [
        BookingStep.INSURANCE_NOT_ACCEPTED,
        BookingStep.INSURANCE_FUTURE,
        BookingStep.WAITLIST,
        BookingStep.CALENDAR,
        BookingStep.WELCOME,
    ],
    BookingStep.INSURANCE_NOT_ACCEPTED: [BookingStep.CONFIRMATION, BookingStep.PAYER_SEARCH],
    BookingStep.INSURANCE_FUTURE: [BookingStep.CONFIRMATION, BookingStep.PAYER_SEARCH],
    BookingStep.WAITLIST: [BookingStep.CONFIRMATION, BookingStep.PAYER_SEARCH],
    BookingStep.CALENDAR: [BookingStep.INSURANCE_INFO, BookingStep.PAYER_SEARCH],
    BookingStep.INSURANCE_INFO: [BookingStep.ROI, BookingStep.CALENDAR],
    BookingStep.ROI: [BookingStep.CONFIRMATION, BookingStep.INSURANCE_INFO],
    BookingStep.CONFIRMATION: [],
}

BACK_TRANSITIONS = {
    BookingStep.PAYER_SEARCH: BookingStep.WELCOME,
    BookingStep.INSURANCE_NOT_ACCEPTED: BookingStep.PAYER_SEARCH,
    BookingStep.INSURANCE_FUTURE: BookingStep.PAYER_SEARCH,
    BookingStep.WAITLIST: BookingStep.PAYER_SEARCH,
    BookingStep.CALENDAR: BookingStep.PAYER_SEARCH,
    BookingStep.INSURANCE_INFO: BookingStep.CALENDAR,
    BookingStep.ROI: BookingStep.INSURANCE_INFO,
}

# Where payer selection lands for each acceptance status
ACCEPTANCE_STEPS = {
    AcceptanceStatus.ACTIVE: BookingStep.CALENDAR,
    AcceptanceStatus.FUTURE: BookingStep.INSURANCE_FUTURE,
    AcceptanceStatus.WAITLIST: BookingStep.WAITLIST,
    AcceptanceStatus.NOT_ACCEPTED: BookingStep.INSURANCE_NOT_ACCEPTED,
}

LEAD_STEPS = (
    BookingStep.INSURANCE_NOT_ACCEPTED,
    BookingStep.INSURANCE_FUTURE,
    BookingStep.WAITLIST,
)

SESSION_TTL = BOOKING_SESSION_TTL  # 24 hours

# Redis Key Patterns
# booking:session:{session_id} - BookingSession JSON
SESSION_KEY_PREFIX = "booking:session:"
