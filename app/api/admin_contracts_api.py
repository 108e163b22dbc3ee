"""
Admin Contracts API

Provider-payer contracts (direct network participation). Writes are upserts
on (provider_id, payer_id); the list flags contracts changed since the last
roster rebuild.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from supabase import Client

from app.api.errors import http_error, internal_error
from app.database import get_db
from app.exceptions import SchedulerError, ValidationFailedError
from app.middleware.auth import TokenPayload, require_admin
from app.models.scheduling import ContractStatus
from app.schemas.admin import ContractUpdate, ContractUpsert
from app.schemas.responses import success_response
from app.services.contract_service import ContractService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/contracts", tags=["admin", "contracts"])


@router.get("")
async def list_contracts(
    status: Optional[ContractStatus] = Query(None),
    provider_id: Optional[str] = Query(None),
    payer_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Provider or payer name"),
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        result = ContractService(supabase).list_contracts(
            status=status.value if status else None,
            provider_id=provider_id,
            payer_id=payer_id,
            search=search,
        )
        return success_response(result["contracts"], meta=result["meta"])
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("list contracts", e)


@router.post("")
async def upsert_contract(
    request: ContractUpsert,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    """
    Create the contract for a provider/payer pair, or replace the existing one.
    """
    try:
        contract = ContractService(supabase).upsert_contract(
            request.model_dump(mode="json"), performed_by=admin.actor
        )
        return success_response(contract, message="Contract saved successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("save contract", e)


@router.get("/{contract_id}")
async def get_contract(
    contract_id: str,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        return success_response(ContractService(supabase).get_contract(contract_id))
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("fetch contract", e)


@router.patch("/{contract_id}")
async def update_contract(
    contract_id: str,
    request: ContractUpdate,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    changes = request.model_dump(mode="json", exclude_unset=True)
    try:
        if not changes:
            raise ValidationFailedError("No valid fields to update")
        contract = ContractService(supabase).update_contract(
            contract_id, changes, performed_by=admin.actor
        )
        return success_response(contract, message="Contract updated successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update contract", e)


@router.delete("/{contract_id}")
async def delete_contract(
    contract_id: str,
    supabase: Client = Depends(get_db),
    admin: TokenPayload = Depends(require_admin),
):
    try:
        ContractService(supabase).delete_contract(contract_id, performed_by=admin.actor)
        return success_response({"id": contract_id}, message="Contract deleted successfully")
    except SchedulerError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("delete contract", e)
