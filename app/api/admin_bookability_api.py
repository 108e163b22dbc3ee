"""
Admin Bookability API

Dashboards over the bookable provider/payer relationships:
- /health: gaps (providers with no payers, payers with no providers),
  expiring contracts, providers without a direct contract
- /coverage: who can book whom on a date, per provider or per payer
- /rebuild-roster: resync the materialized roster table
- /options: dropdown data for the admin forms
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from supabase import Client

from app.api.errors import http_error, internal_error
from app.config import PRACTICE_TIMEZONE
from app.database import get_db
from app.exceptions import SchedulerError, ValidationFailedError
from app.middleware.auth import TokenPayload, require_admin
from app.models.scheduling import ContractStatus, Designation, SupervisionLevel
from app.schemas.admin import RebuildRosterRequest
from app.schemas.responses import success_response
from app.services.bookability_service import BookabilityService, provider_display_name
from app.services.roster_service import RosterService
from app.utils.timezone_utils import today_in_timezone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin", "bookability"])


def _label(value: str) -> str:
    return value.replace("_", " ").title()


@router.get("/bookability/health")
async def bookability_health(
    target_date: Optional[date] = Query(None, alias="date", description="Defaults to today"),
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    target = target_date or today_in_timezone(PRACTICE_TIMEZONE)
    try:
        return success_response(BookabilityService(supabase).health(target))
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("compute bookability health", e, component="bookability")


@router.get("/bookability/coverage")
async def bookability_coverage(
    view: Optional[str] = Query(None, description="provider | payer"),
    entity_id: Optional[str] = Query(None, alias="id"),
    mode: str = Query("today", description="today | service_date"),
    service_date: Optional[date] = Query(None),
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """
    Relationships effective on the target date for one provider or one payer.

    mode=today uses the practice's current date; mode=service_date requires
    service_date.
    """
    try:
        if not view or not entity_id:
            raise ValidationFailedError("view and id are required")
        if mode == "service_date":
            if service_date is None:
                raise ValidationFailedError("service_date is required when mode=service_date")
            target = service_date
        elif mode == "today":
            target = today_in_timezone(PRACTICE_TIMEZONE)
        else:
            raise ValidationFailedError("mode must be 'today' or 'service_date'")

        result = BookabilityService(supabase).coverage(view, entity_id, target)
        return {"success": True, **result}
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("compute coverage", e, component="bookability")


@router.post("/rebuild-roster")
async def rebuild_roster(
    request: Optional[RebuildRosterRequest] = None,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """Recompute bookable relationships and sync bookable_provider_payer_roster."""
    try:
        result = RosterService(supabase).rebuild(
            trigger=request.trigger if request else "manual", performed_by=admin.actor
        )
        return success_response(result, message="Roster rebuilt successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("rebuild roster", e, component="roster")


@router.get("/options")
async def admin_options(
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """Dropdown options for the contract, supervision and organization forms."""
    try:
        providers = supabase.table("providers").select(
            "id, first_name, last_name, title, is_active"
        ).order("last_name").execute().data or []
        payers = supabase.table("payers").select(
            "id, name, payer_type, state, status_code"
        ).order("name").execute().data or []
        organizations = supabase.table("organizations").select(
            "id, name, slug"
        ).eq("status", "active").order("name").execute().data or []

        return success_response({
            "providers": [
                {
                    "id": p["id"],
                    "name": provider_display_name(p),
                    "title": p.get("title"),
                    "is_active": p.get("is_active", True),
                }
                for p in providers
            ],
            "payers": [
                {
                    "id": p["id"],
                    "name": p.get("name"),
                    "payer_type": p.get("payer_type"),
                    "state": p.get("state"),
                    "status_code": p.get("status_code"),
                }
                for p in payers
            ],
            "organizations": organizations,
            "contract_statuses": [
                {"value": s.value, "label": _label(s.value)} for s in ContractStatus
            ],
            "supervision_levels": [
                {"value": s.value, "label": _label(s.value)} for s in SupervisionLevel
            ],
            "designations": [
                {"value": d.value, "label": _label(d.value)} for d in Designation
            ],
        })
    except Exception as e:
        raise internal_error("load admin options", e)
