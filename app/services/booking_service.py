"""
Booking Service

Creates patient appointments after re-checking bookability and conflicts at
write time:

    idempotent replay -> bookability -> billing/rendering resolution
    -> conflict check -> patient find-or-create -> insert -> audit
"""

import logging
import secrets
import string
from typing import Any, Dict, Optional

from supabase import Client

from app.config import CASH_PAYER_ID
from app.database import first_row
from app.exceptions import NotBookableError, ResourceNotFoundError, SlotNotAvailableError
from app.observability import observe_booking
from app.schemas.booking import AppointmentCreateRequest
from app.services.audit_service import AuditAction, AuditService
from app.services.availability_service import cash_relationship
from app.services.bookability_service import BookabilityService
from app.utils.logging_config import mask_patient
from app.utils.timezone_utils import DEFAULT_TIMEZONE, utc_now_iso, utc_to_local

logger = logging.getLogger(__name__)

CONFIRMATION_ALPHABET = string.ascii_uppercase + string.digits
CONFIRMATION_LENGTH = 6


def generate_confirmation_code(length: int = CONFIRMATION_LENGTH) -> str:
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(length))


class BookingService:
    def __init__(
        self,
        supabase_client: Client,
        bookability: Optional[BookabilityService] = None,
        audit: Optional[AuditService] = None,
        timezone_str: str = DEFAULT_TIMEZONE
    ):
        self.supabase = supabase_client
        self.bookability = bookability or BookabilityService(supabase_client)
        self.audit = audit or AuditService(supabase_client)
        self.timezone = timezone_str

    def _find_by_idempotency_key(self, key: str) -> Optional[Dict[str, Any]]:
        return first_row(
            self.supabase.table("appointments").select("*").eq("idempotency_key", key).limit(1).execute()
        )

    def _require_provider(self, provider_id: str) -> Dict[str, Any]:
        provider = first_row(
            self.supabase.table("providers").select(
                "id, first_name, last_name, is_active, is_bookable"
            ).eq("id", provider_id).limit(1).execute()
        )
        if not provider or not provider.get("is_active") or not provider.get("is_bookable"):
            raise ResourceNotFoundError("Provider", provider_id)
        return provider

    def _has_conflict(self, provider_id: str, start_iso: str, end_iso: str) -> bool:
        conflict = first_row(
            self.supabase.table("appointments").select("id").eq(
                "provider_id", provider_id
            ).neq("status", "cancelled").lt("start_time", end_iso).gt(
                "end_time", start_iso
            ).limit(1).execute()
        )
        return conflict is not None

    def find_or_create_patient(self, patient: Dict[str, Any]) -> Dict[str, Any]:
        """Patients are matched on normalized email plus date of birth."""
        existing = first_row(
            self.supabase.table("patients").select("*").eq(
                "email", patient["email"]
            ).eq("date_of_birth", patient["date_of_birth"]).limit(1).execute()
        )
        if existing:
            logger.info(f"Matched existing patient {existing['id']}: {mask_patient(patient)}")
            return existing

        now = utc_now_iso()
        created = first_row(
            self.supabase.table("patients").insert({**patient, "created_at": now, "updated_at": now}).execute()
        )
        logger.info(f"Created patient {created['id']}: {mask_patient(patient)}")
        return created

    def create_appointment(
        self,
        request: AppointmentCreateRequest,
        performed_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Book an appointment.

        Raises:
            ResourceNotFoundError: unknown or inactive provider
            NotBookableError: provider not bookable for the payer on that date
            SlotNotAvailableError: overlapping appointment exists
        """
        if request.idempotency_key:
            existing = self._find_by_idempotency_key(request.idempotency_key)
            if existing:
                observe_booking("replayed")
                logger.info(f"Idempotent replay for appointment {existing['id']}")
                return {
                    "appointment": existing,
                    "confirmation_code": existing.get("confirmation_code"),
                    "replayed": True,
                }

        self._require_provider(request.provider_id)

        service_date = utc_to_local(request.start_time, self.timezone).date()
        payer_id = request.payer_id or CASH_PAYER_ID

        if payer_id == CASH_PAYER_ID:
            path = cash_relationship(request.provider_id)
        else:
            path = self.bookability.resolve(request.provider_id, payer_id, service_date)
            if path is None:
                observe_booking("not_bookable")
                raise NotBookableError(request.provider_id, payer_id, service_date.isoformat())

        start_iso = request.start_time.isoformat()
        end_iso = request.end_time.isoformat()

        if self._has_conflict(request.provider_id, start_iso, end_iso):
            observe_booking("conflict", path.via)
            raise SlotNotAvailableError(request.provider_id, start_iso)

        patient = self.find_or_create_patient(request.patient.model_dump(mode="json"))

        confirmation_code = generate_confirmation_code()
        now = utc_now_iso()
        record = {
            "provider_id": request.provider_id,
            "billing_provider_id": path.billing_provider_id,
            "rendering_provider_id": path.rendering_provider_id,
            "patient_id": patient["id"],
            "payer_id": None if payer_id == CASH_PAYER_ID else payer_id,
            "start_time": start_iso,
            "end_time": end_iso,
            "timezone": self.timezone,
            "status": "scheduled",
            "location_type": request.location_type.value,
            "insurance_info": request.insurance.model_dump(mode="json"),
            "roi_contacts": [c.model_dump(mode="json") for c in request.roi_contacts],
            "booking_source": "patient_booking",
            "booking_scenario": request.booking_scenario.value,
            "case_manager": request.case_manager.model_dump(mode="json") if request.case_manager else None,
            "referral_code": request.referral_code,
            "notes": request.notes,
            "confirmation_code": confirmation_code,
            "idempotency_key": request.idempotency_key,
            "created_at": now,
            "updated_at": now,
        }

        appointment = first_row(self.supabase.table("appointments").insert(record).execute())

        self.audit.log(
            AuditAction.APPOINTMENT_CREATED,
            "appointment",
            appointment["id"],
            performed_by or "patient",
            extra={
                "provider_id": request.provider_id,
                "payer_id": payer_id,
                "via": path.via,
                "billing_provider_id": path.billing_provider_id,
            },
        )
        observe_booking("created", path.via)

        logger.info(
            f"Appointment {appointment['id']} booked with {request.provider_id} on {service_date} "
            f"via {path.via} for {mask_patient(request.patient.model_dump(mode='json'))}"
        )

        return {
            "appointment": appointment,
            "confirmation_code": confirmation_code,
            "via": path.via,
            "requires_co_visit": path.requires_co_visit,
            "replayed": False,
        }
