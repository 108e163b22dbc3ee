"""
Admin Supervision Relationships API

Attending/resident supervision per payer. A supervisee may have at most one
active primary attending per payer.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from supabase import Client

from app.api.errors import http_error, internal_error
from app.database import get_db
from app.exceptions import SchedulerError
from app.middleware.auth import TokenPayload, require_admin
from app.schemas.admin import SupervisionRelationshipIn
from app.schemas.responses import success_response
from app.services.supervision_service import SupervisionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/supervision-relationships", tags=["admin", "supervision"])


@router.get("")
async def list_relationships(
    supervisee_id: Optional[str] = Query(None),
    supervisor_id: Optional[str] = Query(None),
    payer_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        rows = SupervisionService(supabase).list_relationships(
            supervisee_id=supervisee_id,
            supervisor_id=supervisor_id,
            payer_id=payer_id,
            is_active=is_active,
        )
        return success_response(rows, meta={"total": len(rows)})
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("list supervision relationships", e)


@router.post("", status_code=201)
async def create_relationship(
    request: SupervisionRelationshipIn,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        relationship = SupervisionService(supabase).create_relationship(
            request.model_dump(mode="json"), performed_by=admin.actor
        )
        return success_response(relationship, message="Supervision relationship created successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("create supervision relationship", e)


@router.put("/{relationship_id}")
async def update_relationship(
    relationship_id: str,
    request: SupervisionRelationshipIn,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """Full replacement; the relationship itself is ignored by the single-primary check."""
    try:
        relationship = SupervisionService(supabase).update_relationship(
            relationship_id, request.model_dump(mode="json"), performed_by=admin.actor
        )
        return success_response(relationship, message="Supervision relationship updated successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update supervision relationship", e)


@router.delete("/{relationship_id}")
async def delete_relationship(
    relationship_id: str,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        SupervisionService(supabase).delete_relationship(relationship_id, performed_by=admin.actor)
        return success_response({"id": relationship_id}, message="Supervision relationship deleted successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("delete supervision relationship", e)
