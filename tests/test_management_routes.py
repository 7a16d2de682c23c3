"""Integration tests for the audit trail endpoint."""

from __future__ import annotations

from ideon.db.models import ROLE_ADMIN
from ideon.services import audit


def test_member_cannot_read_audit_trail(client, make_user):
    member = make_user("member")

    response = client.get("/api/management/audit", headers=member.headers)

    assert response.status_code == 403


def test_anonymous_cannot_read_audit_trail(client):
    assert client.get("/api/management/audit").status_code == 401


def test_admin_reads_latest_events_first(client, make_user, services):
    admin = make_user("admin", role=ROLE_ADMIN)
    with services.session_factory() as db:
        audit.log_security_event(db, audit.EVENT_REGISTER, user_id=admin.id, ip="8.8.8.8")
        audit.log_security_event(db, audit.EVENT_LOGIN, audit.STATUS_FAILURE, ip="1.1.1.1")

    response = client.get("/api/management/audit", headers=admin.headers)

    assert response.status_code == 200
    rows = response.json()
    assert [r["event"] for r in rows] == ["login", "register"]
    assert rows[0]["status"] == "failure"
    assert rows[0]["user_email"] is None
    assert rows[1]["user_email"] == "admin@example.com"
    assert rows[1]["ip"] == "8.8.8.8"
    assert "details" not in rows[0]


def test_audit_trail_is_capped(client, make_user, services):
    admin = make_user("admin", role=ROLE_ADMIN)
    with services.session_factory() as db:
        for _ in range(audit.AUDIT_PAGE_SIZE + 5):
            audit.log_security_event(db, audit.EVENT_LOGOUT, user_id=admin.id)

    response = client.get("/api/management/audit", headers=admin.headers)

    assert len(response.json()) == audit.AUDIT_PAGE_SIZE
