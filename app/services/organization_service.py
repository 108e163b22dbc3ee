"""
Organization Service

Admin management of partner organizations: paginated listing with partner
and user counts, creation, partial update and soft deletion.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from app.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.database import first_row
from app.exceptions import ConflictError, ResourceNotFoundError, ValidationFailedError
from app.services.audit_service import AuditAction, AuditService
from app.utils.timezone_utils import utc_now_iso

logger = logging.getLogger(__name__)

ORGANIZATION_COLUMNS = (
    "id, name, slug, type, status, primary_contact_email, primary_contact_phone, "
    "primary_contact_name, address_line_1, address_line_2, city, state, zip_code, "
    "tax_id, license_number, accreditation_details, allowed_domains, settings, "
    "created_at, updated_at"
)

# sort key -> (column, descending)
DB_SORTS: Dict[str, Tuple[str, bool]] = {
    "updated_at_desc": ("updated_at", True),
    "created_at_desc": ("created_at", True),
    "created_at_asc": ("created_at", False),
    "name_asc": ("name", False),
    "name_desc": ("name", True),
}

# Sorts over computed fields, applied to the page after counts are attached
COMPUTED_SORTS = {
    "last_activity_desc": "last_activity",
    "user_count_desc": "user_count",
    "partner_count_desc": "partner_count",
}

DEFAULT_SORT = "updated_at_desc"

_SEARCH_UNSAFE = re.compile(r"[,()%*]")


def format_location(org: Dict[str, Any]) -> Optional[str]:
    parts = [p for p in (org.get("city"), org.get("state")) if p]
    return ", ".join(parts) or None


class OrganizationService:
    def __init__(self, supabase_client: Client, audit: Optional[AuditService] = None):
        self.supabase = supabase_client
        self.audit = audit or AuditService(supabase_client)

    def list_organizations(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
        search: Optional[str] = None,
        org_type: Optional[str] = None,
        status: Optional[str] = None,
        sort: str = DEFAULT_SORT,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Page of organizations with partner_count, user_count, last_activity
        and location attached.

        Returns:
            (rows, total matching count)
        """
        if page < 1:
            raise ValidationFailedError("page must be >= 1")
        if not 1 <= per_page <= MAX_PAGE_SIZE:
            raise ValidationFailedError(f"per_page must be between 1 and {MAX_PAGE_SIZE}")
        if sort not in DB_SORTS and sort not in COMPUTED_SORTS:
            raise ValidationFailedError(f"Unsupported sort: {sort}")

        query = self.supabase.table("organizations").select(ORGANIZATION_COLUMNS, count="exact")

        term = _SEARCH_UNSAFE.sub("", search or "").strip()
        if term:
            query = query.or_(
                f"name.ilike.%{term}%,primary_contact_email.ilike.%{term}%,city.ilike.%{term}%"
            )
        if org_type:
            query = query.eq("type", org_type)
        if status:
            query = query.eq("status", status)

        column, descending = DB_SORTS.get(sort, DB_SORTS[DEFAULT_SORT])
        offset = (page - 1) * per_page

        result = query.order(column, desc=descending).range(offset, offset + per_page - 1).execute()
        organizations = result.data or []
        total = result.count or 0

        rows = [self._with_counts(org) for org in organizations]

        computed = COMPUTED_SORTS.get(sort)
        if computed:
            # last_activity is an ISO timestamp, the counts are ints
            missing = "" if computed == "last_activity" else 0
            rows.sort(key=lambda row: row.get(computed) or missing, reverse=True)

        logger.info(f"Found {len(rows)} organizations ({total} total), sorted by {sort}")
        return rows, total

    def _with_counts(self, org: Dict[str, Any]) -> Dict[str, Any]:
        partners = self.supabase.table("partners").select(
            "id, updated_at", count="exact"
        ).eq("organization_id", org["id"]).order("updated_at", desc=True).limit(1).execute()

        latest_partner = first_row(partners)

        return {
            **org,
            "partner_count": partners.count or 0,
            "user_count": self._active_user_count(org["id"]),
            "last_activity": (latest_partner or {}).get("updated_at") or org.get("updated_at"),
            "location": format_location(org),
        }

    def _active_user_count(self, organization_id: str) -> int:
        result = self.supabase.table("partner_users").select(
            "id", count="exact"
        ).eq("organization_id", organization_id).eq("is_active", True).execute()
        return result.count or 0

    def _slug_taken(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        query = self.supabase.table("organizations").select("id").eq("slug", slug)
        if exclude_id:
            query = query.neq("id", exclude_id)
        return first_row(query.limit(1).execute()) is not None

    def get_organization(self, organization_id: str) -> Dict[str, Any]:
        org = first_row(
            self.supabase.table("organizations").select("*").eq("id", organization_id).limit(1).execute()
        )
        if not org:
            raise ResourceNotFoundError("Organization", organization_id)
        return {**org, "user_count": self._active_user_count(organization_id)}

    def create_organization(self, payload: Dict[str, Any], performed_by: Optional[str] = None) -> Dict[str, Any]:
        if self._slug_taken(payload["slug"]):
            raise ValidationFailedError("Organization slug already exists")

        now = utc_now_iso()
        record = {**payload, "created_at": now, "updated_at": now}
        organization = first_row(self.supabase.table("organizations").insert(record).execute())

        self.audit.log(
            AuditAction.ORGANIZATION_CREATED,
            "organization",
            organization["id"],
            performed_by,
            after=organization,
        )
        logger.info(f"Organization created: {organization['id']}")

        return {
            **organization,
            "partner_count": 0,
            "user_count": 0,
            "last_activity": organization.get("updated_at"),
            "location": format_location(organization),
        }

    def update_organization(
        self,
        organization_id: str,
        changes: Dict[str, Any],
        performed_by: Optional[str] = None
    ) -> Dict[str, Any]:
        existing = first_row(
            self.supabase.table("organizations").select("*").eq("id", organization_id).limit(1).execute()
        )
        if not existing:
            raise ResourceNotFoundError("Organization", organization_id)

        slug = changes.get("slug")
        if slug and slug != existing.get("slug") and self._slug_taken(slug, exclude_id=organization_id):
            raise ConflictError("Organization slug already exists")

        update_data = {**changes, "updated_at": utc_now_iso()}
        organization = first_row(
            self.supabase.table("organizations").update(update_data).eq("id", organization_id).execute()
        )

        self.audit.log(
            AuditAction.ORGANIZATION_UPDATED,
            "organization",
            organization_id,
            performed_by,
            before=existing,
            after=organization,
        )
        return organization

    def deactivate_organization(self, organization_id: str, performed_by: Optional[str] = None) -> int:
        """Soft delete: mark inactive and deactivate its users. Returns affected user count."""
        existing = first_row(
            self.supabase.table("organizations").select(
                "id, name, status"
            ).eq("id", organization_id).limit(1).execute()
        )
        if not existing:
            raise ResourceNotFoundError("Organization", organization_id)
        if existing.get("status") == "inactive":
            raise ValidationFailedError("Organization is already inactive")

        active_users = self._active_user_count(organization_id)
        now = utc_now_iso()

        self.supabase.table("organizations").update(
            {"status": "inactive", "updated_at": now}
        ).eq("id", organization_id).execute()

        if active_users:
            self.supabase.table("partner_users").update(
                {"is_active": False, "updated_at": now}
            ).eq("organization_id", organization_id).eq("is_active", True).execute()

        self.audit.log(
            AuditAction.ORGANIZATION_DEACTIVATED,
            "organization",
            organization_id,
            performed_by,
            extra={"organization_name": existing.get("name"), "deactivated_users": active_users},
        )
        logger.info(f"Organization deactivated: {organization_id} ({active_users} users affected)")
        return active_users
