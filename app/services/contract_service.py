"""
Contract Service

Provider-payer contracts (provider_payer_networks). Rows are enriched with
provider/payer names and flagged when they changed after the last roster
rebuild.
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from app.database import first_row
from app.exceptions import ResourceNotFoundError, ValidationFailedError
from app.services.audit_service import AuditAction, AuditService
from app.services.bookability_service import provider_display_name
from app.utils.timezone_utils import parse_date, parse_datetime, utc_now_iso

logger = logging.getLogger(__name__)

CONTRACT_COLUMNS = (
    "id, provider_id, payer_id, status, effective_date, expiration_date, "
    "bookable_from_date, notes, created_at, updated_at"
)


class ContractService:
    def __init__(self, supabase_client: Client, audit: Optional[AuditService] = None):
        self.supabase = supabase_client
        self.audit = audit or AuditService(supabase_client)

    def last_rebuild(self) -> Optional[Dict[str, Any]]:
        return first_row(
            self.supabase.table("roster_rebuild_log").select(
                "id, trigger, created_at, entries_processed, entries_added, entries_removed"
            ).order("created_at", desc=True).limit(1).execute()
        )

    @staticmethod
    def _rebuilt_at(last_rebuild: Optional[Dict[str, Any]]):
        return parse_datetime(last_rebuild["created_at"]) if last_rebuild else None

    def _lookup(self, contracts: List[Dict[str, Any]]):
        provider_ids = sorted({c["provider_id"] for c in contracts})
        payer_ids = sorted({c["payer_id"] for c in contracts})

        providers = {}
        if provider_ids:
            rows = self.supabase.table("providers").select(
                "id, first_name, last_name, email"
            ).in_("id", provider_ids).execute().data or []
            providers = {row["id"]: row for row in rows}

        payers = {}
        if payer_ids:
            rows = self.supabase.table("payers").select(
                "id, name, payer_type, state"
            ).in_("id", payer_ids).execute().data or []
            payers = {row["id"]: row for row in rows}

        return providers, payers

    def _enrich(
        self,
        contract: Dict[str, Any],
        providers: Dict[str, Dict[str, Any]],
        payers: Dict[str, Dict[str, Any]],
        rebuilt_at=None
    ) -> Dict[str, Any]:
        payer = payers.get(contract["payer_id"]) or {}
        updated_at = contract.get("updated_at")
        needs_rebuild = rebuilt_at is None or (
            updated_at is not None and parse_datetime(updated_at) > rebuilt_at
        )
        return {
            **contract,
            "provider_name": provider_display_name(providers.get(contract["provider_id"])),
            "payer_name": payer.get("name") or "Unknown Payer",
            "payer_state": payer.get("state") or "Unknown",
            "status_display": contract.get("status") or "unknown",
            "contract_type": "direct",
            "needs_roster_rebuild": needs_rebuild,
        }

    def list_contracts(
        self,
        status: Optional[str] = None,
        provider_id: Optional[str] = None,
        payer_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        query = self.supabase.table("provider_payer_networks").select(CONTRACT_COLUMNS)
        if status:
            query = query.eq("status", status)
        if provider_id:
            query = query.eq("provider_id", provider_id)
        if payer_id:
            query = query.eq("payer_id", payer_id)

        contracts = query.order("updated_at", desc=True).execute().data or []

        last_rebuild = self.last_rebuild()
        rebuilt_at = self._rebuilt_at(last_rebuild)

        providers, payers = self._lookup(contracts)
        rows = [self._enrich(c, providers, payers, rebuilt_at) for c in contracts]

        term = (search or "").strip().lower()
        if term:
            rows = [
                r for r in rows
                if term in r["provider_name"].lower() or term in r["payer_name"].lower()
            ]

        logger.info(f"Found {len(rows)} contracts")
        return {
            "contracts": rows,
            "meta": {
                "total": len(rows),
                "last_rebuild": last_rebuild,
                "needs_roster_rebuild": sum(1 for r in rows if r["needs_roster_rebuild"]),
            },
        }

    def _require(self, table: str, row_id: str, label: str) -> Dict[str, Any]:
        row = first_row(self.supabase.table(table).select("*").eq("id", row_id).limit(1).execute())
        if not row:
            raise ResourceNotFoundError(label, row_id)
        return row

    def get_contract(self, contract_id: str) -> Dict[str, Any]:
        contract = self._require("provider_payer_networks", contract_id, "Contract")
        providers, payers = self._lookup([contract])
        return self._enrich(contract, providers, payers, self._rebuilt_at(self.last_rebuild()))

    def upsert_contract(self, payload: Dict[str, Any], performed_by: Optional[str] = None) -> Dict[str, Any]:
        """Create or update the contract for (provider_id, payer_id)."""
        provider = self._require("providers", payload["provider_id"], "Provider")
        payer = self._require("payers", payload["payer_id"], "Payer")

        existing = first_row(
            self.supabase.table("provider_payer_networks").select(CONTRACT_COLUMNS).eq(
                "provider_id", payload["provider_id"]
            ).eq("payer_id", payload["payer_id"]).limit(1).execute()
        )

        now = utc_now_iso()
        record = dict(payload)
        record["updated_at"] = now
        if not existing:
            record["created_at"] = now

        saved = first_row(
            self.supabase.table("provider_payer_networks").upsert(
                record, on_conflict="provider_id,payer_id"
            ).execute()
        )

        self.audit.log(
            AuditAction.CONTRACT_UPSERTED,
            "provider_payer_network",
            saved.get("id"),
            performed_by,
            before=existing,
            after=saved,
        )
        logger.info(f"Contract saved: {saved.get('id')} ({payload['provider_id']} / {payload['payer_id']})")

        return self._enrich(saved, {provider["id"]: provider}, {payer["id"]: payer})

    def update_contract(
        self,
        contract_id: str,
        changes: Dict[str, Any],
        performed_by: Optional[str] = None
    ) -> Dict[str, Any]:
        existing = self._require("provider_payer_networks", contract_id, "Contract")

        merged = {**existing, **changes}
        effective = parse_date(merged.get("effective_date"))
        expiration = parse_date(merged.get("expiration_date"))
        if effective and expiration and expiration < effective:
            raise ValidationFailedError("expiration_date cannot be before effective_date")

        update_data = dict(changes)
        update_data["updated_at"] = utc_now_iso()

        updated = first_row(
            self.supabase.table("provider_payer_networks").update(update_data).eq("id", contract_id).execute()
        )

        self.audit.log(
            AuditAction.CONTRACT_UPDATED,
            "provider_payer_network",
            contract_id,
            performed_by,
            before=existing,
            after=updated,
        )

        providers, payers = self._lookup([updated])
        return self._enrich(updated, providers, payers)

    def delete_contract(self, contract_id: str, performed_by: Optional[str] = None) -> None:
        existing = self._require("provider_payer_networks", contract_id, "Contract")

        self.supabase.table("provider_payer_networks").delete().eq("id", contract_id).execute()

        self.audit.log(
            AuditAction.CONTRACT_DELETED,
            "provider_payer_network",
            contract_id,
            performed_by,
            before=existing,
        )
        logger.info(f"Contract deleted: {contract_id}")
