"""
Custom exceptions for the scheduling backend.

Services raise these; routers translate them to HTTP responses.
"""


class SchedulerError(Exception):
    """Base class for scheduling domain errors."""

    status_code = 500

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationFailedError(SchedulerError):
    """Raised when a request violates a business rule."""

    status_code = 400


class ResourceNotFoundError(SchedulerError):
    """Raised when a referenced row does not exist."""

    status_code = 404

    def __init__(self, resource: str, resource_id: str = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ConflictError(SchedulerError):
    """Raised when a write collides with existing data."""

    status_code = 409


class SlotNotAvailableError(ConflictError):
    """Raised when attempting to book an unavailable slot."""

    def __init__(self, provider_id: str = None, start_time: str = None):
        self.provider_id = provider_id
        self.start_time = start_time
        super().__init__("The selected time is no longer available")


class NotBookableError(SchedulerError):
    """Raised when a provider cannot be booked for a payer on a date."""

    status_code = 422

    def __init__(self, provider_id: str, payer_id: str, service_date: str):
        self.provider_id = provider_id
        self.payer_id = payer_id
        self.service_date = service_date
        super().__init__(
            f"Provider {provider_id} is not bookable for payer {payer_id} on {service_date}"
        )


class InvalidTransitionError(ConflictError):
    """Raised when a booking wizard step transition is not allowed."""

    def __init__(self, from_step: str, to_step: str):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(f"Invalid transition: {from_step} -> {to_step}")


class SessionConflictError(ConflictError):
    """Raised when a booking session was modified concurrently."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Booking session {session_id} was modified concurrently")
