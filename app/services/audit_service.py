"""
Audit Service

Write-side audit trail for admin and booking changes, stored in
scheduler_audit_logs. Update entries carry before/after snapshots and a
field-level diff.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from supabase import Client

logger = logging.getLogger(__name__)

AUDIT_TABLE = "scheduler_audit_logs"


class AuditAction(Enum):
    """Audited operations"""
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_UPDATED = "organization_updated"
    ORGANIZATION_DEACTIVATED = "organization_deactivated"
    CONTRACT_UPSERTED = "contract_upserted"
    CONTRACT_UPDATED = "contract_updated"
    CONTRACT_DELETED = "contract_deleted"
    SUPERVISION_CREATED = "supervision_created"
    SUPERVISION_UPDATED = "supervision_updated"
    SUPERVISION_DELETED = "supervision_deleted"
    ROSTER_REBUILT = "roster_rebuilt"
    APPOINTMENT_CREATED = "appointment_created"
    LEAD_CREATED = "booking_lead_created"


@dataclass
class AuditEntry:
    """One audit log row"""
    action: AuditAction
    resource_type: str
    resource_id: Optional[str]
    performed_by: Optional[str]
    changes: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["action"] = self.action.value
        return result


def compute_diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Field-level diff {field: {"from": old, "to": new}} ignoring timestamps."""
    before = before or {}
    after = after or {}
    ignored = {"updated_at", "created_at"}

    diff = {}
    for key in sorted(set(before) | set(after)):
        if key in ignored:
            continue
        if before.get(key) != after.get(key):
            diff[key] = {"from": before.get(key), "to": after.get(key)}
    return diff


class AuditService:
    """Persists audit entries. A failed audit write never fails the request."""

    def __init__(self, supabase_client: Client):
        self.client = supabase_client

    def log(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: Optional[str] = None,
        performed_by: Optional[str] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        changes: Dict[str, Any] = {}
        if before is not None:
            changes["before"] = before
        if after is not None:
            changes["after"] = after
        if before is not None and after is not None:
            changes["diff"] = compute_diff(before, after)
        if extra:
            changes.update(extra)

        entry = AuditEntry(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            performed_by=performed_by,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            self.client.table(AUDIT_TABLE).insert(entry.to_dict()).execute()
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {action.value} {resource_type}/{resource_id}: {e}"
            )
            return False

        logger.info(f"Audit: {action.value} {resource_type}/{resource_id} by {performed_by or 'system'}")
        return True
