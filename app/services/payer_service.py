"""
Payer Service

Insurance lookup for the booking wizard. Each payer is classified by whether
the practice takes it today, will take it soon, is still credentialing, or
does not take it.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from supabase import Client

from app.config import (
    CASH_PAYER_ID,
    FUTURE_ACCEPTANCE_WINDOW_DAYS,
    PAYER_SEARCH_LIMIT,
    PAYER_SEARCH_MIN_CHARS,
)
from app.database import first_row
from app.exceptions import ResourceNotFoundError
from app.models.scheduling import AcceptanceStatus
from app.utils.timezone_utils import parse_date, today_in_timezone

logger = logging.getLogger(__name__)

PAYER_COLUMNS = "id, name, payer_type, state, status_code, effective_date, requires_attending"

NOT_ACCEPTED_CODES = {"denied", "blocked", "withdrawn", "on_pause"}
APPROVED_CODES = {"approved", "active"}
CREDENTIALING_CODES = {"waiting_on_them", "in_progress", "not_started"}

ACCEPTANCE_PRIORITY = {
    AcceptanceStatus.ACTIVE: 1,
    AcceptanceStatus.FUTURE: 2,
    AcceptanceStatus.WAITLIST: 3,
    AcceptanceStatus.NOT_ACCEPTED: 4,
}

CASH_PAYER = {
    "id": CASH_PAYER_ID,
    "name": "Cash / Self-Pay",
    "payer_type": "self_pay",
    "state": None,
    "status_code": "approved",
    "effective_date": None,
    "requires_attending": False,
}

CASH_SEARCH_TERMS = ("cash", "self", "pay")


def acceptance_status(payer: Dict[str, Any], today: date) -> AcceptanceStatus:
    """Classify a payer row by status_code and effective_date."""
    if payer.get("id") == CASH_PAYER_ID:
        return AcceptanceStatus.ACTIVE

    status_code = payer.get("status_code")

    if status_code in NOT_ACCEPTED_CODES:
        return AcceptanceStatus.NOT_ACCEPTED

    if status_code in APPROVED_CODES:
        effective = parse_date(payer.get("effective_date"))
        if effective is None:
            return AcceptanceStatus.WAITLIST
        if effective <= today:
            return AcceptanceStatus.ACTIVE
        if (effective - today).days <= FUTURE_ACCEPTANCE_WINDOW_DAYS:
            return AcceptanceStatus.FUTURE
        return AcceptanceStatus.WAITLIST

    if status_code in CREDENTIALING_CODES:
        return AcceptanceStatus.WAITLIST

    return AcceptanceStatus.NOT_ACCEPTED


def with_acceptance(payer: Dict[str, Any], today: date) -> Dict[str, Any]:
    return {**payer, "acceptance_status": acceptance_status(payer, today).value}


class PayerService:
    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    def search(self, query: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Case-insensitive name search, best acceptance first.

        Queries shorter than the minimum length return no results.
        """
        term = (query or "").strip()
        if len(term) < PAYER_SEARCH_MIN_CHARS:
            return []

        today = today or today_in_timezone()

        rows = self.supabase.table("payers").select(PAYER_COLUMNS).ilike(
            "name", f"%{term}%"
        ).order("name").limit(PAYER_SEARCH_LIMIT).execute().data or []

        results = [with_acceptance(row, today) for row in rows]

        lowered = term.lower()
        if any(lowered in keyword or keyword in lowered for keyword in CASH_SEARCH_TERMS):
            results.append(with_acceptance(CASH_PAYER, today))

        results.sort(key=lambda p: ACCEPTANCE_PRIORITY[AcceptanceStatus(p["acceptance_status"])])

        logger.info(f"Payer search '{term}': {len(results)} results")
        return results[:PAYER_SEARCH_LIMIT]

    def get_payer(self, payer_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or today_in_timezone()
        if payer_id == CASH_PAYER_ID:
            return with_acceptance(CASH_PAYER, today)

        payer = first_row(
            self.supabase.table("payers").select(PAYER_COLUMNS).eq("id", payer_id).limit(1).execute()
        )
        if not payer:
            raise ResourceNotFoundError("Payer", payer_id)
        return with_acceptance(payer, today)
