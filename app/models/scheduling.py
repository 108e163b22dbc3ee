"""
Pydantic models for provider-payer bookability.
"""

from datetime import date
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class ContractStatus(str, Enum):
    """Status of a provider-payer contract row."""
    IN_NETWORK = "in_network"
    PENDING = "pending"
    INACTIVE = "inactive"


class NetworkStatus(str, Enum):
    """How a provider reaches a payer."""
    IN_NETWORK = "in_network"
    SUPERVISED = "supervised"


class SupervisionLevel(str, Enum):
    """Supervision levels in order of complexity."""
    SIGN_OFF_ONLY = "sign_off_only"
    FIRST_VISIT_IN_PERSON = "first_visit_in_person"
    CO_VISIT_REQUIRED = "co_visit_required"


class Designation(str, Enum):
    """Primary or secondary supervising attending."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class AcceptanceStatus(str, Enum):
    """Whether the practice currently takes a payer."""
    ACTIVE = "active"
    FUTURE = "future"
    WAITLIST = "waitlist"
    NOT_ACCEPTED = "not-accepted"


class BookableRelationship(BaseModel):
    """
    One bookable path between a provider and a payer.

    Direct paths come from in-network contracts; supervised paths come from a
    supervision relationship whose attending holds the contract. The billing
    provider is who bills insurance (the attending on supervised paths), the
    rendering provider is who sees the patient.
    """
    provider_id: str
    payer_id: str
    network_status: NetworkStatus
    billing_provider_id: str
    rendering_provider_id: str
    supervision_level: Optional[SupervisionLevel] = None
    designation: Optional[Designation] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    bookable_from_date: Optional[date] = None
    source_id: Optional[str] = Field(None, description="Contract or supervision row id")

    @property
    def via(self) -> str:
        return "direct" if self.network_status == NetworkStatus.IN_NETWORK else "supervised"

    @property
    def attending_provider_id(self) -> Optional[str]:
        if self.network_status == NetworkStatus.SUPERVISED:
            return self.billing_provider_id
        return None

    @property
    def requires_co_visit(self) -> bool:
        return self.supervision_level == SupervisionLevel.CO_VISIT_REQUIRED

    def is_effective_on(self, target: date) -> bool:
        """True when the relationship can be booked for a visit on `target`."""
        if self.effective_date and self.effective_date > target:
            return False
        if self.expiration_date and self.expiration_date < target:
            return False
        if self.bookable_from_date and self.bookable_from_date > target:
            return False
        return True

    def roster_key(self) -> Tuple[str, str, str, str]:
        return (
            self.provider_id,
            self.payer_id,
            self.network_status.value,
            self.billing_provider_id,
        )

    def to_roster_row(self) -> dict:
        """Row shape of the derived bookable_provider_payer_roster table."""
        return {
            "provider_id": self.provider_id,
            "payer_id": self.payer_id,
            "network_status": self.network_status.value,
            "billing_provider_id": self.billing_provider_id,
            "rendering_provider_id": self.rendering_provider_id,
            "supervision_level": self.supervision_level.value if self.supervision_level else None,
            "effective_date": _iso(self.effective_date),
            "expiration_date": _iso(self.expiration_date),
            "bookable_from_date": _iso(self.bookable_from_date),
        }

    def to_api(self) -> dict:
        """Patient/admin facing representation with legacy field names."""
        return {
            "provider_id": self.provider_id,
            "payer_id": self.payer_id,
            "network_status": self.network_status.value,
            "via": self.via,
            "billing_provider_id": self.billing_provider_id,
            "rendering_provider_id": self.rendering_provider_id,
            "attending_provider_id": self.attending_provider_id,
            "supervision_level": self.supervision_level.value if self.supervision_level else None,
            "requires_co_visit": self.requires_co_visit,
            "effective_date": _iso(self.effective_date),
            "expiration_date": _iso(self.expiration_date),
            "bookable_from_date": _iso(self.bookable_from_date),
        }


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
