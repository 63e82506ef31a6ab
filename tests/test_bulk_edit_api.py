from __future__ import annotations

from app.core.config import settings
from app.models.bulk_edit_log import BulkEditLog
from conftest import SCRIPT_SECRET, fleet_rows, seed_user

HEADERS = {"X-User-Email": "editor@example.com"}


def _submit(client, rows=7):
    return client.post(
        "/bulk-edits",
        headers=HEADERS,
        json={
            "sheet_name": "Abastecimentos",
            "filters": {"Data": "2024-05-01", "Veiculo": "CB-012"},
            "updates": {"Motorista": "Carlos Silva"},
            "affected_rows": fleet_rows(rows),
        },
    )


def test_submit_requires_identity(client):
    response = client.post(
        "/bulk-edits",
        json={"sheet_name": "Abastecimentos", "updates": {"Motorista": "Carlos Silva"}},
    )

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNAUTHENTICATED"


def test_submit_rejects_empty_updates(client):
    response = client.post(
        "/bulk-edits",
        headers=HEADERS,
        json={"sheet_name": "Abastecimentos", "updates": {}},
    )

    assert response.status_code == 422


def test_submit_creates_pending_log(client, db_session, apps_script):
    seed_user(db_session, email="editor@example.com", full_name="Maria Lima")
    seed_user(db_session, email="admin@example.com", roles=[("admin", True)])

    response = _submit(client)

    assert response.status_code == 201
    payload = response.json()
    assert payload["status"] == "pending"
    assert payload["affected_rows_count"] == 7
    assert payload["notified_admins"] == 1
    assert "pending application" in payload["message"]
    assert apps_script.calls == []

    detail = client.get(f"/bulk-edits/{payload['log_id']}", headers=HEADERS).json()
    assert detail["date_filter"] == "2024-05-01"
    assert detail["filters"] == {"Veiculo": "CB-012"}
    assert len(detail["affected_rows_sample"]) == 5
    assert detail["created_by"] == "editor@example.com"


def test_list_and_get_bulk_edits(client, apps_script):
    log_id = _submit(client).json()["log_id"]

    listed = client.get("/bulk-edits?sheet_name=Abastecimentos&status=pending", headers=HEADERS)
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()["logs"]] == [log_id]

    assert client.get("/bulk-edits?sheet_name=Horimetros", headers=HEADERS).json()["logs"] == []
    missing = client.get("/bulk-edits/does-not-exist", headers=HEADERS)
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "LOG_NOT_FOUND"


def test_apply_endpoint_applies_once(client, apps_script):
    log_id = _submit(client).json()["log_id"]

    first = client.post(f"/bulk-edits/{log_id}/apply", headers=HEADERS)
    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["updated_count"] == 7
    assert body["log"]["status"] == "applied"

    second = client.post(f"/bulk-edits/{log_id}/apply", headers=HEADERS)
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"
    assert len(apps_script.mutating_calls) == 1


def test_apply_endpoint_reports_upstream_failure(client, db_session, apps_script):
    apps_script.update_response = (500, "Internal failure")
    log_id = _submit(client).json()["log_id"]

    response = client.post(f"/bulk-edits/{log_id}/apply", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "UPSTREAM_ERROR"
    assert "500" in body["message"]
    assert body["log"]["status"] == "failed"
    assert SCRIPT_SECRET not in response.text
    db_session.expire_all()
    assert db_session.get(BulkEditLog, log_id).status == "failed"


def test_resolve_endpoint(client, apps_script):
    log_id = _submit(client).json()["log_id"]

    response = client.post(
        f"/bulk-edits/{log_id}/resolve",
        headers=HEADERS,
        json={"status": "applied", "notes": "Fixed by hand in the sheet"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "applied"
    assert response.json()["notes"] == "Fixed by hand in the sheet"

    bad = client.post(f"/bulk-edits/{log_id}/resolve", headers=HEADERS, json={"status": "pending"})
    assert bad.status_code == 422


def test_stale_endpoint_uses_threshold(client, apps_script):
    log_id = _submit(client).json()["log_id"]

    assert client.get("/bulk-edits/stale", headers=HEADERS).json()["logs"] == []
    stale = client.get("/bulk-edits/stale?older_than_hours=0", headers=HEADERS).json()["logs"]
    assert [row["id"] for row in stale] == [log_id]


def test_readiness_without_configuration(client, unconfigured_apps_script):
    response = client.get("/bulk-edits/readiness")

    assert response.status_code == 200
    assert response.json()["configured"] is False
    assert response.json()["success"] is False
    assert unconfigured_apps_script.calls == []


def test_readiness_when_script_responds(client, apps_script):
    response = client.get("/bulk-edits/readiness")

    assert response.json() == {
        "configured": True,
        "success": True,
        "message": "Apps Script is responding correctly.",
    }
    assert apps_script.mutating_calls == []


def test_bulk_edit_routes_can_be_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "BULK_EDIT_ENABLED", False)

    response = client.get("/bulk-edits", headers=HEADERS)

    assert response.status_code == 404


def test_notifications_endpoint_lists_admin_inbox(client, db_session, apps_script):
    seed_user(db_session, email="admin@example.com", full_name="Ana Admin", roles=[("admin", True)])
    _submit(client)

    inbox = client.get("/notifications", headers={"X-User-Email": "admin@example.com"})
    assert inbox.status_code == 200
    notifications = inbox.json()["notifications"]
    assert len(notifications) == 1
    assert notifications[0]["type"] == "edit_apontamento"
    assert notifications[0]["read"] is False

    assert client.get("/notifications", headers=HEADERS).json()["notifications"] == []


def test_health(client):
    assert client.get("/health").json() == {"status": "up"}
