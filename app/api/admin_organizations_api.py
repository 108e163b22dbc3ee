"""
Admin Organizations API

Endpoints for treatment centers and other partner organizations:
- Paginated, searchable, sortable organization list with usage counts
- Create / read / partial update
- Soft delete (status=inactive, partner users deactivated)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from supabase import Client

from app.api.errors import http_error, internal_error
from app.config import DEFAULT_PAGE_SIZE
from app.database import get_db
from app.exceptions import SchedulerError, ValidationFailedError
from app.middleware.auth import TokenPayload, require_admin
from app.schemas.admin import OrganizationCreate, OrganizationUpdate
from app.schemas.responses import paginated_response, success_response
from app.services.organization_service import DEFAULT_SORT, OrganizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/organizations", tags=["admin", "organizations"])


@router.get("")
async def list_organizations(
    page: int = Query(1, description="Page number (1-indexed)"),
    per_page: int = Query(DEFAULT_PAGE_SIZE, description="Page size (max 100)"),
    search: Optional[str] = Query(None, description="Matches name, contact e-mail or city"),
    type: Optional[str] = Query(None, description="Organization type"),
    status: Optional[str] = Query(None, description="active | inactive | ..."),
    sort: str = Query(DEFAULT_SORT),
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """
    List organizations with partner_count, user_count, last_activity and location.
    """
    try:
        rows, total = OrganizationService(supabase).list_organizations(
            page=page,
            per_page=per_page,
            search=search,
            org_type=type,
            status=status,
            sort=sort,
        )
        return paginated_response(rows, total, page, per_page)
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("list organizations", e)


@router.post("", status_code=201)
async def create_organization(
    request: OrganizationCreate,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        organization = OrganizationService(supabase).create_organization(
            request.model_dump(mode="json"), performed_by=admin.actor
        )
        return success_response(organization, message="Organization created successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("create organization", e)


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        return success_response(OrganizationService(supabase).get_organization(organization_id))
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("fetch organization", e)


@router.patch("/{organization_id}")
async def update_organization(
    organization_id: str,
    request: OrganizationUpdate,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """
    Partial update. Only fields present in the body are written; a slug
    already used by another organization returns 409.
    """
    changes = request.model_dump(mode="json", exclude_unset=True)
    try:
        if not changes:
            raise ValidationFailedError("No valid fields to update")
        organization = OrganizationService(supabase).update_organization(
            organization_id, changes, performed_by=admin.actor
        )
        return success_response(organization, message="Organization updated successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update organization", e)


@router.delete("/{organization_id}")
async def deactivate_organization(
    organization_id: str,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """Soft delete: the organization and its active users are deactivated."""
    try:
        affected = OrganizationService(supabase).deactivate_organization(
            organization_id, performed_by=admin.actor
        )
        return success_response(
            {"id": organization_id, "status": "inactive", "affected_users": affected},
            message="Organization deactivated successfully",
        )
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("deactivate organization", e)
