"""
Supervision Service

Attending/resident supervision relationships per payer. A supervisee may
have at most one active primary attending for a given payer.
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from app.database import first_row
from app.exceptions import ResourceNotFoundError, ValidationFailedError
from app.models.scheduling import Designation
from app.services.audit_service import AuditAction, AuditService
from app.services.bookability_service import provider_display_name
from app.utils.timezone_utils import utc_now_iso

logger = logging.getLogger(__name__)

TABLE = "supervision_relationships"


def modality_display(constraints: Optional[List[str]]) -> str:
    return ", ".join(constraints) if constraints else "All modalities"


class SupervisionService:
    def __init__(self, supabase_client: Client, audit: Optional[AuditService] = None):
        self.supabase = supabase_client
        self.audit = audit or AuditService(supabase_client)

    def _names(self, rows: List[Dict[str, Any]]):
        provider_ids = sorted(
            {r["supervisor_provider_id"] for r in rows} | {r["supervisee_provider_id"] for r in rows}
        )
        payer_ids = sorted({r["payer_id"] for r in rows if r.get("payer_id")})

        providers = {}
        if provider_ids:
            for row in self.supabase.table("providers").select(
                "id, first_name, last_name, email"
            ).in_("id", provider_ids).execute().data or []:
                providers[row["id"]] = row

        payers = {}
        if payer_ids:
            for row in self.supabase.table("payers").select("id, name").in_("id", payer_ids).execute().data or []:
                payers[row["id"]] = row.get("name")

        return providers, payers

    def _enrich(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        providers, payers = self._names(rows)
        return [
            {
                **row,
                "supervisor_name": provider_display_name(
                    providers.get(row["supervisor_provider_id"]), "Unknown Attending"
                ),
                "supervisee_name": provider_display_name(
                    providers.get(row["supervisee_provider_id"]), "Unknown Resident"
                ),
                "payer_name": payers.get(row.get("payer_id")) or "Unknown Payer",
                "modality_display": modality_display(row.get("modality_constraints")),
            }
            for row in rows
        ]

    def list_relationships(
        self,
        supervisee_id: Optional[str] = None,
        supervisor_id: Optional[str] = None,
        payer_id: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table(TABLE).select("*")
        if supervisee_id:
            query = query.eq("supervisee_provider_id", supervisee_id)
        if supervisor_id:
            query = query.eq("supervisor_provider_id", supervisor_id)
        if payer_id:
            query = query.eq("payer_id", payer_id)
        if is_active is not None:
            query = query.eq("is_active", is_active)

        rows = query.order("created_at", desc=True).execute().data or []
        logger.info(f"Found {len(rows)} supervision relationships")
        return self._enrich(rows)

    def _get(self, relationship_id: str) -> Dict[str, Any]:
        row = first_row(self.supabase.table(TABLE).select("*").eq("id", relationship_id).limit(1).execute())
        if not row:
            raise ResourceNotFoundError("Supervision relationship", relationship_id)
        return row

    def _check_providers_exist(self, payload: Dict[str, Any]) -> None:
        for key in ("supervisor_provider_id", "supervisee_provider_id"):
            found = first_row(
                self.supabase.table("providers").select("id").eq("id", payload[key]).limit(1).execute()
            )
            if not found:
                raise ResourceNotFoundError("Provider", payload[key])

        payer = first_row(
            self.supabase.table("payers").select("id").eq("id", payload["payer_id"]).limit(1).execute()
        )
        if not payer:
            raise ResourceNotFoundError("Payer", payload["payer_id"])

    def _check_single_primary(self, payload: Dict[str, Any], exclude_id: Optional[str] = None) -> None:
        if payload.get("designation") != Designation.PRIMARY.value or not payload.get("is_active", True):
            return

        query = self.supabase.table(TABLE).select("id, supervisor_provider_id").eq(
            "supervisee_provider_id", payload["supervisee_provider_id"]
        ).eq("payer_id", payload["payer_id"]).eq(
            "designation", Designation.PRIMARY.value
        ).eq("is_active", True)
        if exclude_id:
            query = query.neq("id", exclude_id)

        existing = first_row(query.limit(1).execute())
        if existing:
            attending = first_row(
                self.supabase.table("providers").select("id, first_name, last_name").eq(
                    "id", existing["supervisor_provider_id"]
                ).limit(1).execute()
            )
            raise ValidationFailedError(
                "Supervisee already has a primary supervising attending for this payer: "
                f"{provider_display_name(attending, 'Unknown')}"
            )

    def create_relationship(self, payload: Dict[str, Any], performed_by: Optional[str] = None) -> Dict[str, Any]:
        self._check_providers_exist(payload)
        self._check_single_primary(payload)

        now = utc_now_iso()
        actor = performed_by or "admin"
        record = {
            **payload,
            "created_by": actor,
            "updated_by": actor,
            "created_at": now,
            "updated_at": now,
        }
        created = first_row(self.supabase.table(TABLE).insert(record).execute())

        self.audit.log(
            AuditAction.SUPERVISION_CREATED,
            "supervision_relationship",
            created["id"],
            performed_by,
            after=created,
        )
        logger.info(
            f"Supervision relationship created: {created['id']} "
            f"({payload['supervisee_provider_id']} -> {payload['supervisor_provider_id']})"
        )
        return self._enrich([created])[0]

    def update_relationship(
        self,
        relationship_id: str,
        payload: Dict[str, Any],
        performed_by: Optional[str] = None
    ) -> Dict[str, Any]:
        existing = self._get(relationship_id)
        self._check_providers_exist(payload)
        self._check_single_primary(payload, exclude_id=relationship_id)

        update_data = {
            **payload,
            "updated_by": performed_by or "admin",
            "updated_at": utc_now_iso(),
        }
        updated = first_row(self.supabase.table(TABLE).update(update_data).eq("id", relationship_id).execute())

        self.audit.log(
            AuditAction.SUPERVISION_UPDATED,
            "supervision_relationship",
            relationship_id,
            performed_by,
            before=existing,
            after=updated,
        )
        return self._enrich([updated])[0]

    def delete_relationship(self, relationship_id: str, performed_by: Optional[str] = None) -> None:
        existing = self._get(relationship_id)

        self.supabase.table(TABLE).delete().eq("id", relationship_id).execute()

        self.audit.log(
            AuditAction.SUPERVISION_DELETED,
            "supervision_relationship",
            relationship_id,
            performed_by,
            before=existing,
        )
        logger.info(f"Supervision relationship deleted: {relationship_id}")
