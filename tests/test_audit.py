"""
Tests for the audit trail
"""

from app.services.audit_service import AUDIT_TABLE, AuditAction, AuditService, compute_diff
from tests.fake_supabase import FakeSupabase


def test_compute_diff_ignores_timestamps():
    before = {"name": "Harbor", "city": "Ogden", "updated_at": "2024-01-01T00:00:00+00:00"}
    after = {"name": "Harbor", "city": "Logan", "state": "UT", "updated_at": "2024-02-01T00:00:00+00:00"}

    assert compute_diff(before, after) == {
        "city": {"from": "Ogden", "to": "Logan"},
        "state": {"from": None, "to": "UT"},
    }
    assert compute_diff(None, None) == {}


def test_log_writes_snapshot_and_diff():
    db = FakeSupabase()

    assert AuditService(db).log(
        AuditAction.CONTRACT_UPDATED,
        "provider_payer_network",
        "contract-1",
        "admin-1",
        before={"status": "pending"},
        after={"status": "in_network"},
        ip_address="203.0.113.9",
    )

    row = db.rows(AUDIT_TABLE)[0]
    assert row["action"] == "contract_updated"
    assert row["performed_by"] == "admin-1"
    assert row["ip_address"] == "203.0.113.9"
    assert row["changes"]["diff"] == {"status": {"from": "pending", "to": "in_network"}}


def test_log_extra_without_snapshots():
    db = FakeSupabase()
    AuditService(db).log(AuditAction.ROSTER_REBUILT, "bookable_provider_payer_roster", extra={"trigger": "manual"})

    row = db.rows(AUDIT_TABLE)[0]
    assert row["changes"] == {"trigger": "manual"}
    assert row["resource_id"] is None


def test_failed_write_does_not_raise():
    db = FakeSupabase()
    db.failing_tables.add(AUDIT_TABLE)

    assert AuditService(db).log(AuditAction.CONTRACT_DELETED, "provider_payer_network", "contract-1") is False


def test_failed_audit_does_not_fail_admin_write(client, db, admin_headers):
    db.failing_tables.add(AUDIT_TABLE)

    response = client.patch(
        "/api/admin/contracts/contract-direct",
        json={"notes": "audit store down"},
        headers=admin_headers,
    )
    assert response.status_code == 200
