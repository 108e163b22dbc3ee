"""
Patient Booking API

Public endpoints behind the patient booking flow:
- Payer lookup with acceptance status
- Slot search for a payer over a date range
- Appointment creation (idempotent on idempotency_key)

These routes are rate limited per client IP (see middleware/rate_limiter.py).
"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from supabase import Client

from app.api.errors import http_error, internal_error
from app.config import PRACTICE_TIMEZONE
from app.database import get_db
from app.exceptions import SchedulerError
from app.observability import observe_booking, track_latency
from app.schemas.booking import AppointmentCreateRequest, SlotSearchRequest
from app.schemas.responses import success_response
from app.services.availability_service import AvailabilityService
from app.services.booking_service import BookingService
from app.services.payer_service import PayerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patient-booking", tags=["patient-booking"])


@router.get("/payers")
@track_latency("patient_booking.payers")
async def search_payers(
    q: str = Query("", description="Payer name (at least 2 characters)"),
    supabase: Client = Depends(get_db),
):
    try:
        payers = PayerService(supabase).search(q)
        return success_response(payers, meta={"total": len(payers), "query": q.strip()})
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("search payers", e, component="payers")


@router.post("/slots")
@track_latency("patient_booking.slots")
async def search_slots(
    request: SlotSearchRequest,
    supabase: Client = Depends(get_db),
):
    """
    Available appointment slots for a payer, grouped by date.

    Only providers with a bookable path for the payer on each date are
    considered. Times are generated in the practice timezone and returned
    in UTC.
    """
    try:
        result = AvailabilityService(supabase, timezone_str=PRACTICE_TIMEZONE).get_slots(
            payer_id=request.payer_id,
            start_date=request.start_date,
            end_date=request.end_date,
            duration_minutes=request.duration_minutes,
            provider_id=request.provider_id,
            language=request.language,
        )
        return success_response(result)
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("load available slots", e, component="availability")


@router.post("/appointments", status_code=201)
@track_latency("patient_booking.appointments")
async def create_appointment(
    request: AppointmentCreateRequest,
    response: Response,
    supabase: Client = Depends(get_db),
):
    """
    Book an appointment.

    Returns 422 when the provider is not bookable for the payer on the
    service date and 409 when the slot was taken in the meantime. A repeated
    idempotency_key returns the original booking with status 200.
    """
    try:
        result = BookingService(supabase, timezone_str=PRACTICE_TIMEZONE).create_appointment(request)
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        observe_booking("error")
        raise internal_error("create appointment", e, component="booking")

    if result["replayed"]:
        response.status_code = 200
        return success_response(result, message="Appointment already booked")
    return success_response(result, message="Appointment booked successfully")
