"""
Availability Service

Generates bookable appointment slots for a payer across a date range:

1. Resolve which providers are bookable for the payer on each date
2. Expand weekly provider_availability blocks for that weekday
3. Apply availability_exceptions (unavailable days, custom hours)
4. Step slots of the requested duration through each block
5. Drop slots in the past and slots overlapping existing appointments

Schedules are wall-clock times in the practice timezone; slot start/end are
returned in UTC alongside the local date and time.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from app.config import CASH_PAYER_ID, DEFAULT_APPOINTMENT_DURATION, MAX_SLOT_RANGE_DAYS
from app.exceptions import ValidationFailedError
from app.models.scheduling import BookableRelationship, NetworkStatus
from app.observability import observe_slot_search
from app.services.bookability_service import (
    BookabilityService,
    provider_display_name,
    provider_speaks,
    resolve_relationship,
)
from app.utils.timezone_utils import (
    DEFAULT_TIMEZONE,
    local_to_utc,
    parse_date,
    parse_datetime,
    parse_wall_time,
    schedule_day_of_week,
    utc_to_local,
)

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 240

Block = Tuple[time, time]


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def step_slots(day: date, block: Block, duration_minutes: int, tz: str) -> List[Tuple[datetime, datetime]]:
    """Consecutive (start_utc, end_utc) slots of `duration_minutes` that fit inside `block`."""
    block_start, block_end = block
    step = timedelta(minutes=duration_minutes)

    cursor = datetime.combine(day, block_start)
    limit = datetime.combine(day, block_end)

    slots = []
    while cursor + step <= limit:
        start_utc = local_to_utc(day, cursor.time(), tz)
        slots.append((start_utc, start_utc + step))
        cursor += step
    return slots


def weekly_blocks(schedule_rows: List[Dict[str, Any]], day: date) -> List[Block]:
    """Weekly schedule blocks that apply on `day` (0 = Sunday)."""
    weekday = schedule_day_of_week(day)
    blocks = []
    for row in schedule_rows:
        if row.get("day_of_week") != weekday:
            continue
        effective = parse_date(row.get("effective_date"))
        expiration = parse_date(row.get("expiration_date"))
        if effective and effective > day:
            continue
        if expiration and expiration < day:
            continue
        blocks.append((parse_wall_time(row["start_time"]), parse_wall_time(row["end_time"])))
    return sorted(blocks)


def apply_exceptions(blocks: List[Block], exceptions: List[Dict[str, Any]]) -> List[Block]:
    """`unavailable` removes the day; `custom_hours` replace the weekly blocks."""
    if any(e.get("exception_type") == "unavailable" for e in exceptions):
        return []

    custom = [
        (parse_wall_time(e["start_time"]), parse_wall_time(e["end_time"]))
        for e in exceptions
        if e.get("exception_type") == "custom_hours" and e.get("start_time") and e.get("end_time")
    ]
    return sorted(custom) if custom else blocks


def cash_relationship(provider_id: str) -> BookableRelationship:
    return BookableRelationship(
        provider_id=provider_id,
        payer_id=CASH_PAYER_ID,
        network_status=NetworkStatus.IN_NETWORK,
        billing_provider_id=provider_id,
        rendering_provider_id=provider_id,
    )


class AvailabilityService:
    def __init__(
        self,
        supabase_client: Client,
        bookability: Optional[BookabilityService] = None,
        timezone_str: str = DEFAULT_TIMEZONE
    ):
        self.supabase = supabase_client
        self.bookability = bookability or BookabilityService(supabase_client)
        self.timezone = timezone_str

    def _fetch_providers(self, provider_id: Optional[str], language: Optional[str]) -> Dict[str, Dict[str, Any]]:
        query = self.supabase.table("providers").select(
            "id, first_name, last_name, title, role, languages_spoken"
        ).eq("is_active", True).eq("is_bookable", True).eq("accepts_new_patients", True)
        if provider_id:
            query = query.eq("id", provider_id)

        rows = query.execute().data or []
        return {row["id"]: row for row in rows if provider_speaks(row, language)}

    def _fetch_schedules(self, provider_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        rows = self.supabase.table("provider_availability").select(
            "provider_id, day_of_week, start_time, end_time, effective_date, expiration_date"
        ).in_("provider_id", provider_ids).execute().data or []

        by_provider = defaultdict(list)
        for row in rows:
            by_provider[row["provider_id"]].append(row)
        return by_provider

    def _fetch_exceptions(
        self,
        provider_ids: List[str],
        start: date,
        end: date
    ) -> Dict[Tuple[str, date], List[Dict[str, Any]]]:
        rows = self.supabase.table("availability_exceptions").select(
            "provider_id, exception_date, exception_type, start_time, end_time"
        ).in_("provider_id", provider_ids).gte(
            "exception_date", start.isoformat()
        ).lte("exception_date", end.isoformat()).execute().data or []

        by_day = defaultdict(list)
        for row in rows:
            by_day[(row["provider_id"], parse_date(row["exception_date"]))].append(row)
        return by_day

    def _fetch_booked(self, provider_ids: List[str], start: date, end: date) -> Dict[str, List[Tuple[datetime, datetime]]]:
        window_start = local_to_utc(start, time.min, self.timezone)
        window_end = local_to_utc(end + timedelta(days=1), time.min, self.timezone)

        rows = self.supabase.table("appointments").select(
            "provider_id, start_time, end_time, status"
        ).in_("provider_id", provider_ids).neq("status", "cancelled").lt(
            "start_time", window_end.isoformat()
        ).gt("end_time", window_start.isoformat()).execute().data or []

        booked = defaultdict(list)
        for row in rows:
            booked[row["provider_id"]].append(
                (parse_datetime(row["start_time"]), parse_datetime(row["end_time"]))
            )
        return booked

    def get_slots(
        self,
        payer_id: str,
        start_date: date,
        end_date: Optional[date] = None,
        duration_minutes: int = DEFAULT_APPOINTMENT_DURATION,
        provider_id: Optional[str] = None,
        language: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Available slots for `payer_id` between start_date and end_date (inclusive).

        Raises:
            ValidationFailedError: reversed or oversized range, bad duration
        """
        end_date = end_date or start_date
        if end_date < start_date:
            raise ValidationFailedError("end_date cannot be before start_date")
        if (end_date - start_date).days + 1 > MAX_SLOT_RANGE_DAYS:
            raise ValidationFailedError(f"Date range cannot exceed {MAX_SLOT_RANGE_DAYS} days")
        if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
            raise ValidationFailedError(
                f"duration_minutes must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES}"
            )

        now = now or datetime.now(timezone.utc)
        is_cash = payer_id == CASH_PAYER_ID

        providers = self._fetch_providers(provider_id, language)
        relationships = [] if is_cash else self.bookability.load_relationships(payer_id=payer_id)

        if not is_cash:
            reachable = {r.provider_id for r in relationships}
            providers = {pid: p for pid, p in providers.items() if pid in reachable}

        result = {
            "payer_id": payer_id,
            "date_range": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "duration_minutes": duration_minutes,
            "timezone": self.timezone,
            "total_slots": 0,
            "slots_by_date": {},
            "providers": [],
        }

        if not providers:
            result["message"] = "No bookable providers found for this insurance"
            observe_slot_search("cash" if is_cash else "insurance", 0)
            return result

        provider_ids = sorted(providers)
        schedules = self._fetch_schedules(provider_ids)
        exceptions = self._fetch_exceptions(provider_ids, start_date, end_date)
        booked = self._fetch_booked(provider_ids, start_date, end_date)

        attending_names = self.bookability.provider_names(
            {r.billing_provider_id for r in relationships if r.network_status == NetworkStatus.SUPERVISED}
        )

        slots_by_date: Dict[str, List[Dict[str, Any]]] = {}
        providers_with_slots = set()

        day = start_date
        while day <= end_date:
            day_slots = []
            for pid in provider_ids:
                path = cash_relationship(pid) if is_cash else resolve_relationship(
                    relationships, pid, payer_id, day
                )
                if path is None:
                    continue

                blocks = apply_exceptions(weekly_blocks(schedules.get(pid, []), day), exceptions.get((pid, day), []))
                for block in blocks:
                    for start_utc, end_utc in step_slots(day, block, duration_minutes, self.timezone):
                        if start_utc <= now:
                            continue
                        if any(overlaps(start_utc, end_utc, b_start, b_end) for b_start, b_end in booked.get(pid, [])):
                            continue
                        day_slots.append(self._slot(day, start_utc, end_utc, providers[pid], path, attending_names))
                        providers_with_slots.add(pid)

            if day_slots:
                day_slots.sort(key=lambda s: (s["start_time"], s["provider_name"]))
                slots_by_date[day.isoformat()] = day_slots
            day += timedelta(days=1)

        total = sum(len(slots) for slots in slots_by_date.values())
        result["slots_by_date"] = slots_by_date
        result["total_slots"] = total
        result["providers"] = [
            {"id": pid, "name": provider_display_name(providers[pid])}
            for pid in provider_ids if pid in providers_with_slots
        ]

        observe_slot_search("cash" if is_cash else "insurance", total)
        logger.info(
            f"Generated {total} slots for payer {payer_id} "
            f"({start_date} to {end_date}, {len(providers_with_slots)} providers)"
        )
        return result

    def _slot(
        self,
        day: date,
        start_utc: datetime,
        end_utc: datetime,
        provider: Dict[str, Any],
        path: BookableRelationship,
        attending_names: Dict[str, str]
    ) -> Dict[str, Any]:
        local_start = utc_to_local(start_utc, self.timezone)
        return {
            "date": day.isoformat(),
            "time": local_start.strftime("%H:%M"),
            "start_time": start_utc.isoformat(),
            "end_time": end_utc.isoformat(),
            "duration_minutes": int((end_utc - start_utc).total_seconds() // 60),
            "provider_id": provider["id"],
            "provider_name": provider_display_name(provider),
            "via": path.via,
            "billing_provider_id": path.billing_provider_id,
            "rendering_provider_id": path.rendering_provider_id,
            "attending_provider_id": path.attending_provider_id,
            "attending_name": attending_names.get(path.attending_provider_id) if path.attending_provider_id else None,
            "supervision_level": path.supervision_level.value if path.supervision_level else None,
            "requires_co_visit": path.requires_co_visit,
        }
