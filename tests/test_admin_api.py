"""
Tests for the admin back-office endpoints
"""

from datetime import date, timedelta

import pytest

from app.services.organization_service import format_location
from app.services.supervision_service import modality_display
from tests.conftest import (
    PAYER_ACTIVE,
    PAYER_EMPTY,
    PROVIDER_ATTENDING,
    PROVIDER_DIRECT,
    PROVIDER_IDLE,
    PROVIDER_RESIDENT,
    make_token,
)


def audit_actions(db):
    return [row["action"] for row in db.rows("scheduler_audit_logs")]


@pytest.fixture
def organizations(db):
    db.tables["organizations"] = [
        {"id": "org-1", "name": "Harbor Recovery", "slug": "harbor-recovery", "type": "treatment_center",
         "status": "active", "primary_contact_email": "intake@harbor.test", "city": "Ogden", "state": "UT",
         "created_at": "2024-01-01T00:00:00+00:00", "updated_at": "2024-03-01T00:00:00+00:00"},
        {"id": "org-2", "name": "Summit House", "slug": "summit-house", "type": "sober_living",
         "status": "active", "primary_contact_email": "ops@summit.test", "city": "Provo", "state": "UT",
         "created_at": "2024-02-01T00:00:00+00:00", "updated_at": "2024-02-01T00:00:00+00:00"},
        {"id": "org-3", "name": "Closed Clinic", "slug": "closed-clinic", "type": "treatment_center",
         "status": "inactive", "primary_contact_email": None, "city": None, "state": None,
         "created_at": "2023-01-01T00:00:00+00:00", "updated_at": "2023-01-01T00:00:00+00:00"},
    ]
    db.tables["partners"] = [
        {"id": "partner-1", "organization_id": "org-2", "updated_at": "2024-06-01T00:00:00+00:00"},
        {"id": "partner-2", "organization_id": "org-2", "updated_at": "2024-05-01T00:00:00+00:00"},
    ]
    db.tables["partner_users"] = [
        {"id": "pu-1", "organization_id": "org-1", "is_active": True},
        {"id": "pu-2", "organization_id": "org-1", "is_active": True},
        {"id": "pu-3", "organization_id": "org-1", "is_active": False},
        {"id": "pu-4", "organization_id": "org-2", "is_active": True},
    ]
    return db


class TestAdminAuth:

    def test_missing_token_is_401(self, client):
        response = client.get("/api/admin/contracts")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Authentication required"}

    def test_invalid_token_is_401(self, client):
        response = client.get("/api/admin/contracts", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_non_admin_is_403(self, client, staff_headers):
        response = client.get("/api/admin/contracts", headers=staff_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"

    def test_allow_listed_email_is_admin(self, client):
        token = make_token(sub="ops-1", role="authenticated", email="Ops@Practice.test")
        response = client.get("/api/admin/contracts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


class TestOrganizations:

    def test_list_with_counts_and_pagination(self, client, organizations, admin_headers):
        response = client.get("/api/admin/organizations?per_page=2", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 1, "per_page": 2, "total": 3, "total_pages": 2}
        assert [o["id"] for o in body["data"]] == ["org-1", "org-2"]

        harbor, summit = body["data"]
        assert harbor["user_count"] == 2
        assert harbor["partner_count"] == 0
        assert harbor["location"] == "Ogden, UT"
        assert harbor["last_activity"] == "2024-03-01T00:00:00+00:00"
        assert summit["partner_count"] == 2
        assert summit["last_activity"] == "2024-06-01T00:00:00+00:00"

    def test_search_and_filters(self, client, organizations, admin_headers):
        response = client.get("/api/admin/organizations?search=provo", headers=admin_headers)
        assert [o["id"] for o in response.json()["data"]] == ["org-2"]

        response = client.get("/api/admin/organizations?status=inactive", headers=admin_headers)
        assert [o["id"] for o in response.json()["data"]] == ["org-3"]

    def test_computed_sort(self, client, organizations, admin_headers):
        response = client.get("/api/admin/organizations?sort=partner_count_desc", headers=admin_headers)
        assert response.json()["data"][0]["id"] == "org-2"

    def test_last_activity_sort_puts_unknown_activity_last(self, client, organizations, admin_headers):
        organizations.tables["organizations"][2]["updated_at"] = None

        response = client.get("/api/admin/organizations?sort=last_activity_desc", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [o["id"] for o in data] == ["org-2", "org-1", "org-3"]
        assert data[2]["last_activity"] is None

    @pytest.mark.parametrize("query", ["sort=bogus", "page=0", "per_page=101"])
    def test_bad_list_parameters_are_400(self, client, organizations, admin_headers, query):
        response = client.get(f"/api/admin/organizations?{query}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_create_defaults_and_audit(self, client, organizations, admin_headers):
        response = client.post(
            "/api/admin/organizations",
            json={"name": "New Dawn", "slug": "new-dawn"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        created = response.json()["data"]
        assert created["type"] == "treatment_center"
        assert created["status"] == "active"
        assert created["user_count"] == 0
        assert "organization_created" in audit_actions(organizations)

    def test_create_duplicate_slug_is_400(self, client, organizations, admin_headers):
        response = client.post(
            "/api/admin/organizations",
            json={"name": "Harbor Again", "slug": "harbor-recovery"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert "slug" in response.json()["error"]

    @pytest.mark.parametrize("body", [
        {"slug": "no-name"},
        {"name": "No Slug"},
        {"name": "Bad Slug", "slug": "Bad Slug!"},
    ])
    def test_create_validation_is_400(self, client, organizations, admin_headers, body):
        response = client.post("/api/admin/organizations", json=body, headers=admin_headers)
        assert response.status_code == 400

    def test_get_missing_is_404(self, client, organizations, admin_headers):
        response = client.get("/api/admin/organizations/nope", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Organization not found"}

    def test_patch_updates_only_sent_fields(self, client, organizations, admin_headers):
        response = client.patch(
            "/api/admin/organizations/org-1",
            json={"city": "Logan"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        updated = response.json()["data"]
        assert updated["city"] == "Logan"
        assert updated["name"] == "Harbor Recovery"

        audit = organizations.rows("scheduler_audit_logs")[-1]
        assert audit["action"] == "organization_updated"
        assert audit["changes"]["diff"] == {"city": {"from": "Ogden", "to": "Logan"}}

    def test_patch_slug_conflict_is_409(self, client, organizations, admin_headers):
        response = client.patch(
            "/api/admin/organizations/org-1",
            json={"slug": "summit-house"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_delete_soft_deactivates_users(self, client, organizations, admin_headers):
        response = client.delete("/api/admin/organizations/org-1", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["affected_users"] == 2
        org = next(o for o in organizations.rows("organizations") if o["id"] == "org-1")
        assert org["status"] == "inactive"
        assert not any(
            u["is_active"] for u in organizations.rows("partner_users") if u["organization_id"] == "org-1"
        )

    def test_delete_already_inactive_is_400(self, client, organizations, admin_headers):
        response = client.delete("/api/admin/organizations/org-3", headers=admin_headers)
        assert response.status_code == 400

    def test_format_location(self):
        assert format_location({"city": "Ogden", "state": "UT"}) == "Ogden, UT"
        assert format_location({"city": None, "state": None}) is None


class TestContracts:

    def test_list_enriched_with_rebuild_flag(self, client, db, admin_headers):
        db.tables["roster_rebuild_log"] = [
            {"id": "log-1", "trigger": "manual", "created_at": "2024-06-01T00:00:00+00:00"}
        ]
        db.tables["provider_payer_networks"][0]["updated_at"] = "2024-07-01T00:00:00+00:00"

        response = client.get("/api/admin/contracts", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["last_rebuild"]["id"] == "log-1"
        by_id = {c["id"]: c for c in body["data"]}
        assert by_id["contract-direct"]["needs_roster_rebuild"] is True
        assert by_id["contract-attending"]["needs_roster_rebuild"] is False
        assert by_id["contract-direct"]["provider_name"] == "Dana Direct"
        assert by_id["contract-direct"]["payer_name"] == "Aetna Behavioral"
        assert by_id["contract-direct"]["contract_type"] == "direct"

    def test_get_reports_rebuild_flag_like_list(self, client, db, admin_headers):
        db.tables["roster_rebuild_log"] = [
            {"id": "log-1", "trigger": "manual", "created_at": "2024-06-01T00:00:00+00:00"}
        ]
        db.tables["provider_payer_networks"][0]["updated_at"] = "2024-07-01T00:00:00+00:00"

        stale = client.get("/api/admin/contracts/contract-direct", headers=admin_headers).json()["data"]
        fresh = client.get("/api/admin/contracts/contract-attending", headers=admin_headers).json()["data"]

        assert stale["needs_roster_rebuild"] is True
        assert fresh["needs_roster_rebuild"] is False

    def test_search_by_provider_name(self, client, admin_headers):
        response = client.get("/api/admin/contracts?search=alex", headers=admin_headers)
        assert [c["id"] for c in response.json()["data"]] == ["contract-attending"]

    def test_upsert_creates_then_updates(self, client, db, admin_headers):
        payload = {"provider_id": PROVIDER_IDLE, "payer_id": PAYER_EMPTY, "effective_date": "2025-01-01"}

        first = client.post("/api/admin/contracts", json=payload, headers=admin_headers)
        assert first.status_code == 200
        assert first.json()["data"]["status"] == "in_network"

        second = client.post(
            "/api/admin/contracts",
            json={**payload, "status": "pending", "notes": "renewal"},
            headers=admin_headers,
        )
        assert second.status_code == 200

        rows = [c for c in db.rows("provider_payer_networks") if c["provider_id"] == PROVIDER_IDLE]
        assert len(rows) == 1
        assert rows[0]["status"] == "pending"
        assert audit_actions(db).count("contract_upserted") == 2

    def test_upsert_unknown_provider_is_404(self, client, admin_headers):
        response = client.post(
            "/api/admin/contracts",
            json={"provider_id": "missing", "payer_id": PAYER_ACTIVE, "effective_date": "2025-01-01"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    @pytest.mark.parametrize("body", [
        {"provider_id": PROVIDER_IDLE, "payer_id": PAYER_ACTIVE},
        {"provider_id": PROVIDER_IDLE, "payer_id": PAYER_ACTIVE, "effective_date": "2025-01-01",
         "status": "terminated"},
        {"provider_id": PROVIDER_IDLE, "payer_id": PAYER_ACTIVE, "effective_date": "2025-06-01",
         "expiration_date": "2025-01-01"},
    ])
    def test_upsert_validation_is_400(self, client, admin_headers, body):
        response = client.post("/api/admin/contracts", json=body, headers=admin_headers)
        assert response.status_code == 400

    def test_patch_rejects_inverted_window(self, client, admin_headers):
        response = client.patch(
            "/api/admin/contracts/contract-direct",
            json={"expiration_date": "2000-01-01"},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_patch_and_delete(self, client, db, admin_headers):
        response = client.patch(
            "/api/admin/contracts/contract-direct",
            json={"notes": "checked"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["notes"] == "checked"

        response = client.delete("/api/admin/contracts/contract-direct", headers=admin_headers)
        assert response.status_code == 200
        assert all(c["id"] != "contract-direct" for c in db.rows("provider_payer_networks"))

        response = client.delete("/api/admin/contracts/contract-direct", headers=admin_headers)
        assert response.status_code == 404


class TestSupervision:

    def payload(self, **overrides):
        body = {
            "supervisor_provider_id": PROVIDER_DIRECT,
            "supervisee_provider_id": PROVIDER_IDLE,
            "payer_id": PAYER_ACTIVE,
            "supervision_level": "sign_off_only",
            "designation": "primary",
            "start_date": "2025-01-01",
        }
        body.update(overrides)
        return body

    def test_list_enriched(self, client, admin_headers):
        response = client.get("/api/admin/supervision-relationships", headers=admin_headers)

        assert response.status_code == 200
        row = response.json()["data"][0]
        assert row["supervisor_name"] == "Alex Attending"
        assert row["supervisee_name"] == "Riley Resident"
        assert row["payer_name"] == "Aetna Behavioral"
        assert row["modality_display"] == "All modalities"

    def test_create(self, client, db, admin_headers):
        response = client.post(
            "/api/admin/supervision-relationships",
            json=self.payload(modality_constraints=["telehealth"]),
            headers=admin_headers,
        )

        assert response.status_code == 201
        created = response.json()["data"]
        assert created["modality_display"] == "telehealth"
        assert created["created_by"] == "admin-1"
        assert "supervision_created" in audit_actions(db)

    def test_second_active_primary_is_rejected(self, client, admin_headers):
        response = client.post(
            "/api/admin/supervision-relationships",
            json=self.payload(supervisee_provider_id=PROVIDER_RESIDENT),
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert "Alex Attending" in response.json()["error"]

    def test_secondary_is_allowed_alongside_primary(self, client, admin_headers):
        response = client.post(
            "/api/admin/supervision-relationships",
            json=self.payload(supervisee_provider_id=PROVIDER_RESIDENT, designation="secondary"),
            headers=admin_headers,
        )
        assert response.status_code == 201

    @pytest.mark.parametrize("overrides", [
        {"supervisee_provider_id": PROVIDER_DIRECT},
        {"designation": "tertiary"},
        {"supervision_level": "hands_off"},
        {"concurrency_cap": 0},
        {"concurrency_cap": 101},
        {"end_date": "2024-12-31"},
    ])
    def test_validation_is_400(self, client, admin_headers, overrides):
        response = client.post(
            "/api/admin/supervision-relationships",
            json=self.payload(**overrides),
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_unknown_supervisor_is_404(self, client, admin_headers):
        response = client.post(
            "/api/admin/supervision-relationships",
            json=self.payload(supervisor_provider_id="missing"),
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_put_excludes_itself_from_primary_check(self, client, db, admin_headers):
        response = client.put(
            "/api/admin/supervision-relationships/supervision-1",
            json=self.payload(
                supervisor_provider_id=PROVIDER_ATTENDING,
                supervisee_provider_id=PROVIDER_RESIDENT,
                supervision_level="first_visit_in_person",
            ),
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["supervision_level"] == "first_visit_in_person"
        audit = db.rows("scheduler_audit_logs")[-1]
        assert audit["action"] == "supervision_updated"
        assert audit["changes"]["diff"]["supervision_level"] == {
            "from": "co_visit_required",
            "to": "first_visit_in_person",
        }

    def test_delete(self, client, db, admin_headers):
        response = client.delete("/api/admin/supervision-relationships/supervision-1", headers=admin_headers)
        assert response.status_code == 200
        assert db.rows("supervision_relationships") == []

        response = client.delete("/api/admin/supervision-relationships/supervision-1", headers=admin_headers)
        assert response.status_code == 404

    def test_modality_display(self):
        assert modality_display(["telehealth", "in-office"]) == "telehealth, in-office"
        assert modality_display(None) == "All modalities"


class TestBookabilityEndpoints:

    def test_health(self, client, admin_headers):
        response = client.get(
            f"/api/admin/bookability/health?date={date.today().isoformat()}",
            headers=admin_headers,
        )
        assert response.status_code == 200
        summary = response.json()["data"]["summary"]
        assert summary["providers_zero_payers"] == 1
        assert summary["contracts_expiring_60"] == 1

    def test_health_bad_date_is_400(self, client, admin_headers):
        response = client.get("/api/admin/bookability/health?date=yesterday", headers=admin_headers)
        assert response.status_code == 400

    def test_coverage_for_service_date(self, client, admin_headers):
        target = (date.today() + timedelta(days=60)).isoformat()
        response = client.get(
            f"/api/admin/bookability/coverage?view=payer&id={PAYER_ACTIVE}&mode=service_date&service_date={target}",
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["metadata"]["service_date"] == target
        assert [i["id"] for i in body["data"]] == [PROVIDER_DIRECT]

    @pytest.mark.parametrize("query", [
        f"id={PAYER_ACTIVE}",
        "view=payer",
        f"view=clinic&id={PAYER_ACTIVE}",
        f"view=payer&id={PAYER_ACTIVE}&mode=service_date",
    ])
    def test_coverage_bad_parameters_are_400(self, client, admin_headers, query):
        response = client.get(f"/api/admin/bookability/coverage?{query}", headers=admin_headers)
        assert response.status_code == 400

    def test_rebuild_roster_is_a_diff(self, client, db, admin_headers):
        first = client.post("/api/admin/rebuild-roster", json={"trigger": "manual"}, headers=admin_headers)
        assert first.status_code == 200
        assert first.json()["data"]["entries_added"] == 3
        assert first.json()["data"]["entries_removed"] == 0

        second = client.post("/api/admin/rebuild-roster", headers=admin_headers).json()["data"]
        assert (second["entries_processed"], second["entries_added"], second["entries_removed"]) == (3, 0, 0)

        db.tables["supervision_relationships"][0]["is_active"] = False
        third = client.post("/api/admin/rebuild-roster", json={"trigger": "supervision_change"},
                            headers=admin_headers)
        assert third.json()["data"]["entries_removed"] == 1

        roster = db.rows("bookable_provider_payer_roster")
        assert {r["network_status"] for r in roster} == {"in_network"}
        assert [log["trigger"] for log in db.rows("roster_rebuild_log")] == [
            "manual", "manual", "supervision_change"
        ]

    def test_options(self, client, db, admin_headers):
        db.tables["organizations"] = [
            {"id": "org-1", "name": "Harbor", "slug": "harbor", "status": "active"},
            {"id": "org-2", "name": "Closed", "slug": "closed", "status": "inactive"},
        ]
        response = client.get("/api/admin/options", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["providers"]) == 4
        assert len(data["payers"]) == 4
        assert [o["id"] for o in data["organizations"]] == ["org-1"]
        assert [s["value"] for s in data["contract_statuses"]] == ["in_network", "pending", "inactive"]
        assert [d["value"] for d in data["designations"]] == ["primary", "secondary"]
        assert {"value": "co_visit_required", "label": "Co Visit Required"} in data["supervision_levels"]
