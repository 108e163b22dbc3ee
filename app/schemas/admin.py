"""
Request models for the admin back-office endpoints.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.scheduling import ContractStatus, Designation, SupervisionLevel

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


# =============================================================================
# Organizations
# =============================================================================

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_PATTERN)
    type: str = "treatment_center"
    status: str = "active"
    primary_contact_name: Optional[str] = None
    primary_contact_email: Optional[str] = None
    primary_contact_phone: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    tax_id: Optional[str] = None
    license_number: Optional[str] = None
    accreditation_details: Optional[str] = None
    allowed_domains: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


class OrganizationUpdate(BaseModel):
    """Partial update; only fields present in the request body are written."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=SLUG_PATTERN)
    type: Optional[str] = None
    status: Optional[str] = None
    primary_contact_name: Optional[str] = None
    primary_contact_email: Optional[str] = None
    primary_contact_phone: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    tax_id: Optional[str] = None
    license_number: Optional[str] = None
    accreditation_details: Optional[str] = None
    allowed_domains: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None


# =============================================================================
# Contracts
# =============================================================================

class ContractUpsert(BaseModel):
    provider_id: str = Field(..., min_length=1)
    payer_id: str = Field(..., min_length=1)
    effective_date: date
    expiration_date: Optional[date] = None
    bookable_from_date: Optional[date] = None
    status: ContractStatus = ContractStatus.IN_NETWORK
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.expiration_date and self.expiration_date < self.effective_date:
            raise ValueError("expiration_date cannot be before effective_date")
        return self


class ContractUpdate(BaseModel):
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    bookable_from_date: Optional[date] = None
    status: Optional[ContractStatus] = None
    notes: Optional[str] = None


# =============================================================================
# Supervision relationships
# =============================================================================

class SupervisionRelationshipIn(BaseModel):
    supervisor_provider_id: str = Field(..., min_length=1)
    supervisee_provider_id: str = Field(..., min_length=1)
    payer_id: str = Field(..., min_length=1)
    supervision_level: SupervisionLevel = SupervisionLevel.SIGN_OFF_ONLY
    designation: Designation = Designation.PRIMARY
    start_date: date
    end_date: Optional[date] = None
    modality_constraints: List[str] = Field(default_factory=list)
    concurrency_cap: Optional[int] = Field(None, ge=1, le=100)
    is_active: bool = True
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_relationship(self):
        if self.supervisor_provider_id == self.supervisee_provider_id:
            raise ValueError("A provider cannot supervise themselves")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


# =============================================================================
# Roster
# =============================================================================

class RebuildRosterRequest(BaseModel):
    trigger: str = Field("manual", max_length=100)
