"""
Bookability Service

Canonical provider-payer bookability, computed from contract and supervision
rows fetched from Supabase:

- Direct path: an in-network contract between provider and payer
- Supervised path: an active supervision relationship whose attending holds an
  in-network contract with the same payer. The attending bills, the supervisee
  renders, and the bookable window is the overlap of both windows.

Feeds the patient slot search, the admin health/coverage dashboards and the
derived roster table.
"""

import json
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from app.config import EXPIRATION_WINDOWS_DAYS
from app.exceptions import ValidationFailedError
from app.models.scheduling import (
    BookableRelationship,
    ContractStatus,
    Designation,
    NetworkStatus,
    SupervisionLevel,
)
from app.utils.timezone_utils import parse_date

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = ["English"]
ACCEPTING_PAYER_STATUSES = ["approved", "active"]


# =============================================================================
# Pure helpers
# =============================================================================

def provider_display_name(provider: Optional[Dict[str, Any]], fallback: str = "Unknown Provider") -> str:
    if not provider:
        return fallback
    name = f"{provider.get('first_name') or ''} {provider.get('last_name') or ''}".strip()
    return name or fallback


def _later(a: Optional[date], b: Optional[date]) -> Optional[date]:
    if a and b:
        return max(a, b)
    return a or b


def _earlier(a: Optional[date], b: Optional[date]) -> Optional[date]:
    if a and b:
        return min(a, b)
    return a or b


def _supervision_level(supervision: Dict[str, Any]) -> Optional[SupervisionLevel]:
    """Stored level; 'none' and unrecognised values carry no level."""
    level = supervision.get("supervision_level")
    try:
        return SupervisionLevel(level)
    except ValueError:
        logger.warning(f"Supervision {supervision.get('id')} has no usable supervision level ({level!r})")
        return None


def direct_relationship(contract: Dict[str, Any]) -> BookableRelationship:
    effective = parse_date(contract.get("effective_date"))
    return BookableRelationship(
        provider_id=contract["provider_id"],
        payer_id=contract["payer_id"],
        network_status=NetworkStatus.IN_NETWORK,
        billing_provider_id=contract["provider_id"],
        rendering_provider_id=contract["provider_id"],
        effective_date=effective,
        expiration_date=parse_date(contract.get("expiration_date")),
        bookable_from_date=parse_date(contract.get("bookable_from_date")) or effective,
        source_id=contract.get("id"),
    )


def supervised_relationship(
    supervision: Dict[str, Any],
    attending_contract: Dict[str, Any]
) -> BookableRelationship:
    start = parse_date(supervision.get("start_date"))
    contract_effective = parse_date(attending_contract.get("effective_date"))
    contract_bookable = parse_date(attending_contract.get("bookable_from_date")) or contract_effective

    designation = supervision.get("designation")

    return BookableRelationship(
        provider_id=supervision["supervisee_provider_id"],
        payer_id=supervision["payer_id"],
        network_status=NetworkStatus.SUPERVISED,
        billing_provider_id=supervision["supervisor_provider_id"],
        rendering_provider_id=supervision["supervisee_provider_id"],
        supervision_level=_supervision_level(supervision),
        designation=Designation(designation) if designation else None,
        effective_date=_later(start, contract_effective),
        expiration_date=_earlier(
            parse_date(supervision.get("end_date")),
            parse_date(attending_contract.get("expiration_date"))
        ),
        bookable_from_date=_later(start, contract_bookable),
        source_id=supervision.get("id"),
    )


def build_relationships(
    contracts: Iterable[Dict[str, Any]],
    supervisions: Iterable[Dict[str, Any]]
) -> List[BookableRelationship]:
    """
    Union of direct and supervised paths.

    Only in-network contracts and active supervision rows take part; a
    supervision row with no matching attending contract yields nothing.
    """
    active_contracts = [
        c for c in contracts
        if c.get("status") == ContractStatus.IN_NETWORK.value
    ]

    relationships = [direct_relationship(c) for c in active_contracts]

    by_provider_payer = {(c["provider_id"], c["payer_id"]): c for c in active_contracts}

    for supervision in supervisions:
        if not supervision.get("is_active", True):
            continue
        contract = by_provider_payer.get(
            (supervision.get("supervisor_provider_id"), supervision.get("payer_id"))
        )
        if contract is None:
            continue
        relationships.append(supervised_relationship(supervision, contract))

    return relationships


def _resolution_rank(rel: BookableRelationship):
    is_supervised = rel.network_status == NetworkStatus.SUPERVISED
    is_secondary = rel.designation == Designation.SECONDARY
    return (is_supervised, is_secondary, rel.effective_date or date.min)


def resolve_relationship(
    relationships: Iterable[BookableRelationship],
    provider_id: str,
    payer_id: str,
    target: date
) -> Optional[BookableRelationship]:
    """
    Pick the path used to book `provider_id` for `payer_id` on `target`.

    Direct beats supervised; among supervised paths the primary attending and
    then the earliest effective one wins.
    """
    candidates = [
        rel for rel in relationships
        if rel.provider_id == provider_id
        and rel.payer_id == payer_id
        and rel.is_effective_on(target)
    ]
    if not candidates:
        return None
    return min(candidates, key=_resolution_rank)


def normalize_languages(languages: Any) -> List[str]:
    """Normalize languages_spoken (list, JSON string, plain string or null)."""
    if not languages:
        return list(DEFAULT_LANGUAGES)
    if isinstance(languages, list):
        return languages
    if isinstance(languages, str):
        try:
            parsed = json.loads(languages)
        except ValueError:
            return [languages]
        return parsed if isinstance(parsed, list) else [languages]
    return list(DEFAULT_LANGUAGES)


def provider_speaks(provider: Dict[str, Any], language: Optional[str]) -> bool:
    """English is the default; every provider is assumed to speak it."""
    if not language or language.lower() == "english":
        return True
    wanted = language.lower()
    return any(wanted in lang.lower() for lang in normalize_languages(provider.get("languages_spoken")))


def group_by_supervision(relationships: List[BookableRelationship]) -> Dict[str, Any]:
    """Split relationships into direct and supervised, grouping supervised by attending."""
    direct = [r for r in relationships if r.network_status == NetworkStatus.IN_NETWORK]
    supervised = [r for r in relationships if r.network_status == NetworkStatus.SUPERVISED]

    groups: Dict[str, List[BookableRelationship]] = defaultdict(list)
    for rel in supervised:
        groups[rel.billing_provider_id or "unknown"].append(rel)

    return {
        "direct": direct,
        "supervised": supervised,
        "supervision_groups": dict(groups),
        "stats": {
            "total": len(relationships),
            "direct": len(direct),
            "supervised": len(supervised),
            "co_visit_required": sum(1 for r in relationships if r.requires_co_visit),
        },
    }


# =============================================================================
# Service
# =============================================================================

class BookabilityService:
    """Loads contract/supervision rows and answers bookability questions."""

    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    def _fetch_contracts(
        self,
        provider_ids: Optional[List[str]] = None,
        payer_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table("provider_payer_networks").select(
            "id, provider_id, payer_id, status, effective_date, expiration_date, bookable_from_date"
        ).eq("status", ContractStatus.IN_NETWORK.value)

        if provider_ids is not None:
            query = query.in_("provider_id", provider_ids)
        if payer_id:
            query = query.eq("payer_id", payer_id)

        return query.execute().data or []

    def _fetch_supervisions(
        self,
        supervisee_id: Optional[str] = None,
        payer_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table("supervision_relationships").select(
            "id, supervisor_provider_id, supervisee_provider_id, payer_id, supervision_level, "
            "designation, start_date, end_date, is_active"
        ).eq("is_active", True)

        if supervisee_id:
            query = query.eq("supervisee_provider_id", supervisee_id)
        if payer_id:
            query = query.eq("payer_id", payer_id)

        return query.execute().data or []

    def load_relationships(
        self,
        provider_id: Optional[str] = None,
        payer_id: Optional[str] = None
    ) -> List[BookableRelationship]:
        """All bookable relationships, optionally narrowed to one provider and/or payer."""
        supervisions = self._fetch_supervisions(supervisee_id=provider_id, payer_id=payer_id)

        if provider_id:
            attending_ids = {s["supervisor_provider_id"] for s in supervisions}
            contracts = self._fetch_contracts(
                provider_ids=sorted(attending_ids | {provider_id}),
                payer_id=payer_id
            )
        else:
            contracts = self._fetch_contracts(payer_id=payer_id)

        relationships = build_relationships(contracts, supervisions)

        if provider_id:
            relationships = [r for r in relationships if r.provider_id == provider_id]

        logger.debug(
            f"Loaded {len(relationships)} bookable relationships "
            f"(provider={provider_id}, payer={payer_id})"
        )
        return relationships

    def relationships_on(
        self,
        target: date,
        provider_id: Optional[str] = None,
        payer_id: Optional[str] = None
    ) -> List[BookableRelationship]:
        return [
            rel for rel in self.load_relationships(provider_id=provider_id, payer_id=payer_id)
            if rel.is_effective_on(target)
        ]

    def resolve(self, provider_id: str, payer_id: str, target: date) -> Optional[BookableRelationship]:
        relationships = self.load_relationships(provider_id=provider_id, payer_id=payer_id)
        return resolve_relationship(relationships, provider_id, payer_id, target)

    def resolve_for_payer(self, payer_id: str, target: date) -> Dict[str, BookableRelationship]:
        """Resolved path per provider for every provider bookable with `payer_id` on `target`."""
        relationships = self.load_relationships(payer_id=payer_id)
        resolved = {}
        for provider_id in {r.provider_id for r in relationships}:
            rel = resolve_relationship(relationships, provider_id, payer_id, target)
            if rel:
                resolved[provider_id] = rel
        return resolved

    # -------------------------------------------------------------------------
    # Admin dashboards
    # -------------------------------------------------------------------------

    def _fetch_bookable_providers(self) -> List[Dict[str, Any]]:
        result = self.supabase.table("providers").select(
            "id, first_name, last_name"
        ).eq("is_active", True).eq("is_bookable", True).eq("accepts_new_patients", True).execute()
        return result.data or []

    def health(self, target: date) -> Dict[str, Any]:
        """
        Bookability health metrics for `target`.

        Returns providers with no bookable payers, accepting payers with no
        bookable providers, in-network contracts expiring within 30/60/90
        days (cumulative buckets) and bookable providers lacking an effective
        direct contract.
        """
        relationships = self.relationships_on(target)
        bookable_provider_ids = {r.provider_id for r in relationships}
        bookable_payer_ids = {r.payer_id for r in relationships}

        providers = self._fetch_bookable_providers()

        payers = self.supabase.table("payers").select("id, name").in_(
            "status_code", ACCEPTING_PAYER_STATUSES
        ).execute().data or []

        providers_zero_payers = sorted(
            (
                {"provider_id": p["id"], "provider_name": provider_display_name(p)}
                for p in providers if p["id"] not in bookable_provider_ids
            ),
            key=lambda item: item["provider_name"]
        )

        payers_zero_providers = sorted(
            (
                {"payer_id": p["id"], "payer_name": p.get("name") or "Unknown Payer"}
                for p in payers if p["id"] not in bookable_payer_ids
            ),
            key=lambda item: item["payer_name"]
        )

        contracts_expiring = self._expiring_contracts(target)

        direct_effective_ids = {
            r.provider_id for r in relationships
            if r.network_status == NetworkStatus.IN_NETWORK
        }
        providers_no_contracts = sorted(
            (
                {"provider_id": p["id"], "provider_name": provider_display_name(p)}
                for p in providers if p["id"] not in direct_effective_ids
            ),
            key=lambda item: item["provider_name"]
        )

        data = {
            "providers_zero_payers": providers_zero_payers,
            "payers_zero_providers": payers_zero_providers,
            "contracts_expiring": contracts_expiring,
            "providers_no_contracts": providers_no_contracts,
            "summary": {
                "total_bookable_relationships": len(relationships),
                "unique_bookable_providers": len(bookable_provider_ids),
                "unique_bookable_payers": len(bookable_payer_ids),
                "providers_zero_payers": len(providers_zero_payers),
                "payers_zero_providers": len(payers_zero_providers),
                "providers_no_contracts": len(providers_no_contracts),
                **{
                    f"contracts_expiring_{days}": len(contracts_expiring[f"days_{days}"])
                    for days in EXPIRATION_WINDOWS_DAYS
                },
            },
        }

        logger.info(f"Bookability health for {target}: {data['summary']}")
        return data

    def _expiring_contracts(self, target: date) -> Dict[str, List[Dict[str, Any]]]:
        horizon = target + timedelta(days=max(EXPIRATION_WINDOWS_DAYS))

        contracts = self.supabase.table("provider_payer_networks").select(
            "id, provider_id, payer_id, effective_date, expiration_date, updated_at"
        ).eq("status", ContractStatus.IN_NETWORK.value).gte(
            "expiration_date", target.isoformat()
        ).lte("expiration_date", horizon.isoformat()).order("expiration_date").execute().data or []

        buckets: Dict[str, List[Dict[str, Any]]] = {f"days_{d}": [] for d in EXPIRATION_WINDOWS_DAYS}
        if not contracts:
            return buckets

        provider_names = self.provider_names({c["provider_id"] for c in contracts})
        payer_names = self.payer_names({c["payer_id"] for c in contracts})

        for contract in contracts:
            expiration = parse_date(contract["expiration_date"])
            days_left = (expiration - target).days
            item = {
                "contract_id": contract.get("id"),
                "provider_id": contract["provider_id"],
                "provider_name": provider_names.get(contract["provider_id"], "Unknown Provider"),
                "payer_id": contract["payer_id"],
                "payer_name": payer_names.get(contract["payer_id"], "Unknown Payer"),
                "effective_date": contract.get("effective_date"),
                "expiration_date": contract["expiration_date"],
                "updated_at": contract.get("updated_at"),
                "days_until_expiration": days_left,
            }
            for days in EXPIRATION_WINDOWS_DAYS:
                if days_left <= days:
                    buckets[f"days_{days}"].append(item)

        return buckets

    def coverage(self, view: str, entity_id: str, target: date) -> Dict[str, Any]:
        """
        Coverage for one provider (which payers) or one payer (which providers).
        """
        if view == "provider":
            relationships = self.relationships_on(target, provider_id=entity_id)
            names = self.payer_names({r.payer_id for r in relationships})
            counterpart = lambda rel: (rel.payer_id, names.get(rel.payer_id, "Unknown Payer"))  # noqa: E731
        elif view == "payer":
            relationships = self.relationships_on(target, payer_id=entity_id)
            names = self.provider_names({r.provider_id for r in relationships})
            counterpart = lambda rel: (rel.provider_id, names.get(rel.provider_id, "Unknown Provider"))  # noqa: E731
        else:
            raise ValidationFailedError("view must be 'provider' or 'payer'")

        attending_names = self.provider_names({
            r.billing_provider_id for r in relationships
            if r.network_status == NetworkStatus.SUPERVISED
        })

        items = []
        for rel in relationships:
            item_id, name = counterpart(rel)
            item = {
                "id": item_id,
                "name": name,
                "network_status": rel.network_status.value,
                "via": rel.via,
                "effective_date": rel.to_api()["effective_date"],
                "expiration_date": rel.to_api()["expiration_date"],
                "bookable_from_date": rel.to_api()["bookable_from_date"],
            }
            if rel.network_status == NetworkStatus.SUPERVISED:
                item["supervision_level"] = rel.supervision_level.value if rel.supervision_level else None
                item["supervising_attendings"] = [
                    attending_names.get(rel.billing_provider_id, "Unknown Provider")
                ]
            items.append(item)

        items.sort(key=lambda item: (item["name"], item["network_status"]))

        return {
            "data": items,
            "metadata": {
                "view_type": view,
                "entity_id": entity_id,
                "service_date": target.isoformat(),
                "total_relationships": len(items),
                "direct_relationships": sum(1 for i in items if i["network_status"] == "in_network"),
                "supervised_relationships": sum(1 for i in items if i["network_status"] == "supervised"),
            },
        }

    # -------------------------------------------------------------------------
    # Name lookups
    # -------------------------------------------------------------------------

    def provider_names(self, provider_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted(set(provider_ids))
        if not ids:
            return {}
        rows = self.supabase.table("providers").select(
            "id, first_name, last_name"
        ).in_("id", ids).execute().data or []
        return {row["id"]: provider_display_name(row) for row in rows}

    def payer_names(self, payer_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted(set(payer_ids))
        if not ids:
            return {}
        rows = self.supabase.table("payers").select("id, name").in_("id", ids).execute().data or []
        return {row["id"]: row.get("name") or "Unknown Payer" for row in rows}
