"""Data models for the scheduling backend."""
from app.models.scheduling import (
    AcceptanceStatus,
    BookableRelationship,
    ContractStatus,
    Designation,
    NetworkStatus,
    SupervisionLevel,
)

__all__ = [
    "AcceptanceStatus",
    "BookableRelationship",
    "ContractStatus",
    "Designation",
    "NetworkStatus",
    "SupervisionLevel",
]
