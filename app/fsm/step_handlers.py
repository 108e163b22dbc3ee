"""
Booking Wizard Step Handlers

One handler per wizard action. Each handler loads the session, checks the
action is legal from the current step, applies its side effects and saves the
session with compare-and-set.
"""

import logging
import time
from typing import Optional

from pydantic import ValidationError
from supabase import Client

from app.config import CASH_PAYER_ID
from app.database import first_row
from app.exceptions import NotBookableError, ValidationFailedError
from app.models.scheduling import AcceptanceStatus
from app.schemas.booking import (
    AppointmentCreateRequest,
    BookingScenario,
    ConfirmRequest,
    InsuranceStep,
    LeadSubmission,
    PayerSelection,
    RoiStep,
    ScenarioSelection,
    SlotSelection,
)
from app.services.audit_service import AuditAction, AuditService
from app.services.bookability_service import BookabilityService
from app.services.booking_service import BookingService
from app.services.payer_service import PayerService
from app.utils.logging_config import mask_patient
from app.utils.timezone_utils import DEFAULT_TIMEZONE, utc_now_iso, utc_to_local

from .constants import ACCEPTANCE_STEPS, LEAD_STEPS, BookingStep, CommunicationPreference
from .manager import BookingSessionManager
from .metrics import record_lead, record_transition
from .models import BookingSession

logger = logging.getLogger(__name__)


class BookingWizard:
    """Step actions of the patient booking wizard."""

    def __init__(
        self,
        supabase_client: Client,
        manager: Optional[BookingSessionManager] = None,
        timezone_str: str = DEFAULT_TIMEZONE
    ):
        self.supabase = supabase_client
        self.manager = manager or BookingSessionManager()
        self.timezone = timezone_str
        self.bookability = BookabilityService(supabase_client)
        self.payers = PayerService(supabase_client)
        self.audit = AuditService(supabase_client)
        self.booking = BookingService(
            supabase_client, bookability=self.bookability, audit=self.audit, timezone_str=timezone_str
        )

    async def _commit(self, before: BookingSession, after: BookingSession, started: float) -> BookingSession:
        saved = await self.manager.save(after)
        if before.current_step != after.current_step:
            record_transition(before.current_step.value, after.current_step.value, time.perf_counter() - started)
        return saved

    async def start(self) -> BookingSession:
        return await self.manager.create()

    async def get(self, session_id: str) -> BookingSession:
        return await self.manager.load(session_id)

    async def select_scenario(self, session_id: str, selection: ScenarioSelection) -> BookingSession:
        """welcome -> payer_search"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.WELCOME, action="select_scenario")
        updated = self.manager.transition(session, BookingStep.PAYER_SEARCH)

        if selection.scenario == BookingScenario.CASE_MANAGER and selection.case_manager is None:
            raise ValidationFailedError("case_manager is required for case-manager bookings")

        updated.scenario = selection.scenario.value
        updated.communication_preference = (
            CommunicationPreference.CASE_MANAGER
            if selection.scenario == BookingScenario.CASE_MANAGER
            else CommunicationPreference.PATIENT
        )
        updated.case_manager = selection.case_manager.model_dump(mode="json") if selection.case_manager else None
        updated.referral_code = selection.referral_code

        return await self._commit(session, updated, started)

    async def select_payer(self, session_id: str, selection: PayerSelection) -> BookingSession:
        """payer_search -> calendar | insurance_future | waitlist | insurance_not_accepted"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.PAYER_SEARCH, action="select_payer")

        payer = self.payers.get_payer(selection.payer_id)
        acceptance = AcceptanceStatus(payer["acceptance_status"])
        updated = self.manager.transition(session, ACCEPTANCE_STEPS[acceptance])

        updated.payer = payer
        updated.acceptance_status = acceptance.value
        updated.slot = None

        logger.info(f"Session {session_id} selected payer {payer['id']} ({acceptance.value})")
        return await self._commit(session, updated, started)

    async def select_slot(self, session_id: str, selection: SlotSelection) -> BookingSession:
        """calendar -> insurance_info"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.CALENDAR, action="select_slot")
        updated = self.manager.transition(session, BookingStep.INSURANCE_INFO)

        payer_id = (session.payer or {}).get("id")
        if not payer_id:
            raise ValidationFailedError("Select an insurance before choosing a time")

        service_date = utc_to_local(selection.start_time, self.timezone).date()
        slot = selection.model_dump(mode="json")

        if payer_id != CASH_PAYER_ID:
            path = self.bookability.resolve(selection.provider_id, payer_id, service_date)
            if path is None:
                raise NotBookableError(selection.provider_id, payer_id, service_date.isoformat())
            slot.update(
                via=path.via,
                billing_provider_id=path.billing_provider_id,
                requires_co_visit=path.requires_co_visit,
            )
        else:
            slot.update(via="direct", billing_provider_id=selection.provider_id, requires_co_visit=False)

        updated.slot = slot
        return await self._commit(session, updated, started)

    async def submit_insurance(self, session_id: str, step: InsuranceStep) -> BookingSession:
        """insurance_info -> roi"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.INSURANCE_INFO, action="submit_insurance")
        updated = self.manager.transition(session, BookingStep.ROI)

        updated.patient = step.patient.model_dump(mode="json")
        updated.insurance = step.insurance.model_dump(mode="json")
        updated.location_type = step.location_type.value
        updated.notes = step.notes

        logger.info(f"Session {session_id} intake received for {mask_patient(updated.patient)}")
        return await self._commit(session, updated, started)

    async def submit_roi(self, session_id: str, step: RoiStep) -> BookingSession:
        """Store release-of-information contacts; stays on roi."""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.ROI, action="submit_roi")

        updated = session.model_copy(deep=True)
        updated.roi_contacts = [c.model_dump(mode="json") for c in step.contacts]
        return await self._commit(session, updated, started)

    def _appointment_request(self, session: BookingSession, request: ConfirmRequest) -> AppointmentCreateRequest:
        slot = session.slot or {}
        payer_id = (session.payer or {}).get("id")
        try:
            return AppointmentCreateRequest(
                provider_id=slot.get("provider_id"),
                payer_id=payer_id,
                start_time=slot.get("start_time"),
                end_time=slot.get("end_time"),
                duration_minutes=slot.get("duration_minutes"),
                insurance=session.insurance or {},
                location_type=session.location_type or "telehealth",
                notes=session.notes,
                patient=session.patient,
                roi_contacts=session.roi_contacts,
                booking_scenario=session.scenario or BookingScenario.SELF.value,
                case_manager=session.case_manager,
                referral_code=session.referral_code,
                idempotency_key=request.idempotency_key or f"booking-session-{session.session_id}",
            )
        except ValidationError as e:
            raise ValidationFailedError(
                "Booking details are incomplete or invalid",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )

    async def confirm(self, session_id: str, request: ConfirmRequest) -> BookingSession:
        """roi -> confirmation; creates the appointment"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, BookingStep.ROI, action="confirm")
        updated = self.manager.transition(session, BookingStep.CONFIRMATION)

        result = self.booking.create_appointment(self._appointment_request(session, request))

        updated.appointment_id = result["appointment"]["id"]
        updated.confirmation_code = result["confirmation_code"]

        logger.info(f"Session {session_id} confirmed appointment {updated.appointment_id}")
        return await self._commit(session, updated, started)

    async def submit_lead(self, session_id: str, lead: LeadSubmission) -> BookingSession:
        """insurance_not_accepted | insurance_future | waitlist -> confirmation"""
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        self.manager.require_step(session, *LEAD_STEPS, action="submit_lead")
        updated = self.manager.transition(session, BookingStep.CONFIRMATION)

        payer = session.payer or {}
        record = {
            "payer_id": payer.get("id") if payer.get("id") != CASH_PAYER_ID else None,
            "payer_name": payer.get("name"),
            "acceptance_status": session.acceptance_status,
            "booking_scenario": session.scenario,
            "name": lead.name,
            "email": lead.email,
            "phone": lead.phone,
            "notes": lead.notes,
            "created_at": utc_now_iso(),
        }
        created = first_row(self.supabase.table("booking_leads").insert(record).execute())

        self.audit.log(
            AuditAction.LEAD_CREATED,
            "booking_lead",
            created["id"],
            "patient",
            extra={"payer_id": record["payer_id"], "acceptance_status": session.acceptance_status},
        )
        record_lead(session.acceptance_status or "unknown")

        updated.lead_id = created["id"]
        return await self._commit(session, updated, started)

    async def back(self, session_id: str) -> BookingSession:
        started = time.perf_counter()
        session = await self.manager.load(session_id)
        updated = self.manager.back(session)
        return await self._commit(session, updated, started)
