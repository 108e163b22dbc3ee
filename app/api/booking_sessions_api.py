"""
Booking Sessions API

Server-side booking wizard. Each POST performs one step action and returns
the updated session; actions issued from the wrong step return 409, as do
concurrent updates of the same session.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from supabase import Client

from app.api.errors import http_error, internal_error
from app.config import PRACTICE_TIMEZONE
from app.database import get_db
from app.exceptions import SchedulerError
from app.fsm import BookingSessionManager, BookingWizard, RedisClient, redis_client
from app.schemas.booking import (
    ConfirmRequest,
    InsuranceStep,
    LeadSubmission,
    PayerSelection,
    RoiStep,
    ScenarioSelection,
    SlotSelection,
)
from app.schemas.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/booking-sessions", tags=["booking-sessions"])


def get_session_store() -> RedisClient:
    """Session store dependency; tests override it with an in-memory store."""
    return redis_client


def get_booking_wizard(
    supabase: Client = Depends(get_db),
    store: RedisClient = Depends(get_session_store),
) -> BookingWizard:
    return BookingWizard(
        supabase,
        manager=BookingSessionManager(store),
        timezone_str=PRACTICE_TIMEZONE,
    )


async def _run(action: str, step):
    try:
        session = await step
        return success_response(session.to_public())
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error(action, e, component="booking_wizard")


@router.post("", status_code=201)
async def create_session(wizard: BookingWizard = Depends(get_booking_wizard)):
    """Start a new booking session on the welcome step."""
    return await _run("create booking session", wizard.start())


@router.get("/{session_id}")
async def get_session(session_id: str, wizard: BookingWizard = Depends(get_booking_wizard)):
    return await _run("load booking session", wizard.get(session_id))


@router.post("/{session_id}/scenario")
async def select_scenario(
    session_id: str,
    request: ScenarioSelection,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    return await _run("select scenario", wizard.select_scenario(session_id, request))


@router.post("/{session_id}/payer")
async def select_payer(
    session_id: str,
    request: PayerSelection,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    """
    Routes to calendar, insurance_future, waitlist or insurance_not_accepted
    by the payer's acceptance status.
    """
    return await _run("select payer", wizard.select_payer(session_id, request))


@router.post("/{session_id}/slot")
async def select_slot(
    session_id: str,
    request: SlotSelection,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    return await _run("select slot", wizard.select_slot(session_id, request))


@router.post("/{session_id}/insurance")
async def submit_insurance(
    session_id: str,
    request: InsuranceStep,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    return await _run("save insurance details", wizard.submit_insurance(session_id, request))


@router.post("/{session_id}/roi")
async def submit_roi(
    session_id: str,
    request: RoiStep,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    return await _run("save release-of-information contacts", wizard.submit_roi(session_id, request))


@router.post("/{session_id}/confirm")
async def confirm_booking(
    session_id: str,
    request: Optional[ConfirmRequest] = None,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    """Create the appointment and finish the wizard."""
    return await _run("confirm booking", wizard.confirm(session_id, request or ConfirmRequest()))


@router.post("/{session_id}/lead")
async def submit_lead(
    session_id: str,
    request: LeadSubmission,
    wizard: BookingWizard = Depends(get_booking_wizard),
):
    return await _run("submit lead", wizard.submit_lead(session_id, request))


@router.post("/{session_id}/back")
async def go_back(session_id: str, wizard: BookingWizard = Depends(get_booking_wizard)):
    return await _run("go back", wizard.back(session_id))
