"""
Roster Service

Rebuilds bookable_provider_payer_roster, the materialized copy of the
bookability relationships. The rebuild is a diff: rows no longer produced are
deleted, new rows are inserted, unchanged rows are left alone. Each run is
logged to roster_rebuild_log.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

from supabase import Client

from app.observability import observe_roster_rebuild
from app.services.audit_service import AuditAction, AuditService
from app.services.bookability_service import BookabilityService
from app.utils.timezone_utils import utc_now_iso

logger = logging.getLogger(__name__)

ROSTER_TABLE = "bookable_provider_payer_roster"
REBUILD_LOG_TABLE = "roster_rebuild_log"

KEY_COLUMNS = ("provider_id", "payer_id", "network_status", "billing_provider_id")
COMPARED_COLUMNS = KEY_COLUMNS + (
    "rendering_provider_id",
    "supervision_level",
    "effective_date",
    "expiration_date",
    "bookable_from_date",
)


def _fingerprint(row: Dict[str, Any]) -> Tuple:
    return tuple(row.get(column) for column in COMPARED_COLUMNS)


class RosterService:
    def __init__(
        self,
        supabase_client: Client,
        bookability: Optional[BookabilityService] = None,
        audit: Optional[AuditService] = None
    ):
        self.supabase = supabase_client
        self.bookability = bookability or BookabilityService(supabase_client)
        self.audit = audit or AuditService(supabase_client)

    def rebuild(self, trigger: str = "manual", performed_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Recompute relationships and sync the roster table.

        Returns:
            entries_processed, entries_added, entries_removed, execution_time_ms
        """
        started = time.perf_counter()

        desired = {}
        for rel in self.bookability.load_relationships():
            row = rel.to_roster_row()
            desired[_fingerprint(row)] = row

        current_rows = self.supabase.table(ROSTER_TABLE).select(", ".join(COMPARED_COLUMNS)).execute().data or []
        current = {_fingerprint(row): row for row in current_rows}

        removals = [row for key, row in current.items() if key not in desired]
        additions = [row for key, row in desired.items() if key not in current]

        for row in removals:
            query = self.supabase.table(ROSTER_TABLE).delete()
            for column in KEY_COLUMNS:
                query = query.eq(column, row[column])
            query.execute()

        if additions:
            rebuilt_at = utc_now_iso()
            self.supabase.table(ROSTER_TABLE).insert(
                [{**row, "rebuilt_at": rebuilt_at} for row in additions]
            ).execute()

        elapsed = time.perf_counter() - started
        summary = {
            "entries_processed": len(desired),
            "entries_added": len(additions),
            "entries_removed": len(removals),
            "execution_time_ms": int(elapsed * 1000),
        }

        self.supabase.table(REBUILD_LOG_TABLE).insert({
            "trigger": trigger,
            **summary,
            "created_at": utc_now_iso(),
        }).execute()

        observe_roster_rebuild(trigger, len(additions), len(removals), elapsed)
        self.audit.log(
            AuditAction.ROSTER_REBUILT,
            "bookable_provider_payer_roster",
            None,
            performed_by,
            extra={"trigger": trigger, **summary},
        )

        logger.info(f"Roster rebuilt ({trigger}): {summary}")
        return summary
