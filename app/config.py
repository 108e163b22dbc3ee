"""
Application Configuration
Centralized constants for scheduling, bookability and booking sessions
"""
import os

# Practice timezone used to generate patient-facing slots
PRACTICE_TIMEZONE = os.getenv("PRACTICE_TIMEZONE", "America/Denver")

# Redis (booking wizard sessions)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

# Admin access by e-mail (comma separated), in addition to the JWT "admin" role
ADMIN_EMAILS = [
    email.strip().lower()
    for email in os.getenv("ADMIN_EMAILS", "").split(",")
    if email.strip()
]

# Payer acceptance: approved payers going live within this window are "future",
# anything further out goes to the waitlist
FUTURE_ACCEPTANCE_WINDOW_DAYS = int(os.getenv("FUTURE_ACCEPTANCE_WINDOW_DAYS", "21"))

# Contract expiration buckets shown on the bookability health dashboard
EXPIRATION_WINDOWS_DAYS = (30, 60, 90)

# Slot search limits
MAX_SLOT_RANGE_DAYS = 31
DEFAULT_APPOINTMENT_DURATION = 60

# Bookings may start this many minutes in the past (client clock skew)
BOOKING_PAST_TOLERANCE_MINUTES = 15

# Allowed drift between declared duration and start/end span
DURATION_TOLERANCE_MINUTES = 5

# Payer search
PAYER_SEARCH_MIN_CHARS = 2
PAYER_SEARCH_LIMIT = 20

# Self-pay pseudo payer understood by the booking flow
CASH_PAYER_ID = "cash-payment"

# Booking wizard session lifetime (seconds)
BOOKING_SESSION_TTL = int(os.getenv("BOOKING_SESSION_TTL", "86400"))

# Organization list paging
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
