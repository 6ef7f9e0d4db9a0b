from app.core.errors import StorageFailure
from app.core.settings import settings
from app.models.workflow import ReportStatus
from app.services.report_store import InMemoryReportStore

from conftest import ADMIN, OFFICER, OTHER_OFFICER, OTHER_REPORTER, REPORTER, SUPERADMIN, FlakyStore, headers_for, use_store


def create_report(client, actor=REPORTER, **body):
    body.setdefault("title", "Pothole on Station Road")
    body.setdefault("description", "Large pothole near the bus stop")
    response = client.post("/reports", json=body, headers=headers_for(actor))
    assert response.status_code == 201, response.text
    return response.json()["report"]


def transition(client, report_id, actor, status, **body):
    return client.post(
        f"/reports/{report_id}/transitions",
        json={"status": status, **body},
        headers=headers_for(actor),
    )


def test_root_and_health(client):
    assert client.get("/").json()["service"] == settings.APP_NAME
    assert client.get("/health").json()["status"] == "healthy"
    response = client.get("/health/db")
    assert response.status_code == 200
    assert response.json()["store"] == "InMemoryReportStore"


def test_missing_or_bad_identity_headers(client):
    assert client.get("/reports").status_code == 401
    response = client.get("/reports", headers={"X-Actor-Id": "u1", "X-Actor-Role": "mayor"})
    assert response.status_code == 400


def test_create_and_read_report(client):
    report = create_report(client, category_id="roads")
    assert report["status"] == "submitted"
    assert report["version"] == 1

    assert client.get(f"/reports/{report['id']}", headers=headers_for(REPORTER)).status_code == 200
    assert client.get(f"/reports/{report['id']}", headers=headers_for(OTHER_REPORTER)).status_code == 404
    assert client.get("/reports/missing", headers=headers_for(ADMIN)).status_code == 404


def test_create_report_validation(client):
    response = client.post("/reports", json={"title": "   ", "description": "x"}, headers=headers_for(REPORTER))
    assert response.status_code == 422


def test_list_reports_scopes_reporters(client):
    mine = create_report(client)
    create_report(client, actor=OTHER_REPORTER)

    body = client.get("/reports", headers=headers_for(REPORTER)).json()
    assert [r["id"] for r in body["items"]] == [mine["id"]]
    assert body["pagination"]["total"] == 1

    assert client.get("/reports", headers=headers_for(ADMIN)).json()["pagination"]["total"] == 2


def test_transition_happy_path_and_audit(client):
    report = create_report(client)
    response = transition(
        client, report["id"], ADMIN, "assigned",
        expected_version=1, extra={"assigned_officer_ids": [OFFICER.id]},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["report"]["status"] == "assigned"
    assert body["report"]["version"] == 2

    audit = client.get("/audit-logs", params={"report_id": report["id"]}, headers=headers_for(ADMIN)).json()
    assert [e["action"] for e in audit["items"]] == ["assigned", "created"]
    assert audit["items"][0]["id"] == body["audit_entry_id"]

    entry = client.get(f"/audit-logs/{body['audit_entry_id']}", headers=headers_for(ADMIN))
    assert entry.json()["entry"]["diff"]["status"] == {"before": "submitted", "after": "assigned"}


def test_denials_map_to_status_codes(client):
    report = create_report(client)
    report_id = report["id"]

    invalid = transition(client, report_id, OFFICER, "in_progress")
    assert invalid.status_code == 409
    assert invalid.json()["detail"]["reason"] == "InvalidTransition"

    unauthorized = transition(client, report_id, REPORTER, "assigned")
    assert unauthorized.status_code == 403
    assert unauthorized.json()["detail"]["reason"] == "Unauthorized"

    assert transition(client, report_id, ADMIN, "assigned").status_code == 200
    assert transition(client, report_id, ADMIN, "in_progress").status_code == 200
    precondition = transition(client, report_id, ADMIN, "misrouted", extra={"misroute_reason": "  "})
    assert precondition.status_code == 422
    assert precondition.json()["detail"]["reason"] == "PreconditionFailed"

    stale = transition(client, report_id, ADMIN, "closed", expected_version=5)
    assert stale.status_code == 409
    assert stale.json()["detail"]["reason"] == "VersionConflict"

    missing = transition(client, "missing", ADMIN, "closed")
    assert missing.status_code == 404
    assert missing.json()["detail"]["reason"] == "NotFound"

    unknown_status = transition(client, report_id, ADMIN, "archived")
    assert unknown_status.status_code == 422


def test_close_twice_with_stale_version(client):
    report = create_report(client)
    assert transition(client, report["id"], ADMIN, "closed", expected_version=1).status_code == 200
    response = transition(client, report["id"], ADMIN, "closed", expected_version=1)
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "VersionConflict"


def test_allowed_transitions(client):
    report = create_report(client)
    response = client.get(f"/reports/{report['id']}/allowed-transitions", headers=headers_for(OFFICER))
    assert response.json()["allowed"] == ["assigned"]
    assert client.get("/reports/missing/allowed-transitions", headers=headers_for(ADMIN)).status_code == 404


def test_after_photos_and_restore(client):
    report = create_report(client)
    report_id = report["id"]
    transition(client, report_id, OFFICER, "assigned")

    response = client.post(
        f"/reports/{report_id}/after-photos",
        json={"photos": [{"url": "https://cdn.example/after.jpg"}]},
        headers=headers_for(OFFICER),
    )
    assert response.status_code == 200
    assert response.json()["report"]["photos_after"] == ["https://cdn.example/after.jpg"]

    other = client.post(f"/reports/{report_id}/after-photos", json={"photos": ["x"]}, headers=headers_for(OTHER_OFFICER))
    assert other.status_code == 403

    assert transition(client, report_id, SUPERADMIN, "deleted").status_code == 200
    assert client.post(f"/reports/{report_id}/restore", headers=headers_for(OFFICER)).status_code == 403

    restored = client.post(f"/reports/{report_id}/restore", json={}, headers=headers_for(ADMIN))
    assert restored.status_code == 200
    assert restored.json()["report"]["status"] == "assigned"


def test_bulk_transitions(client):
    a = create_report(client)
    b = create_report(client)
    transition(client, b["id"], ADMIN, "closed")

    response = client.post(
        "/reports/bulk-transitions",
        json={"ids": [a["id"], b["id"], "missing"], "status": "assigned", "extra": {"assigned_officer_ids": [OFFICER.id]}},
        headers=headers_for(ADMIN),
    )
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["updated"] == [a["id"]]
    assert [(f["id"], f["reason"]) for f in result["failed"]] == [
        (b["id"], "InvalidTransition"),
        ("missing", "NotFound"),
    ]


def test_bulk_transitions_size_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_BULK_IDS", 2)
    response = client.post(
        "/reports/bulk-transitions",
        json={"ids": ["a", "b", "c"], "status": "closed"},
        headers=headers_for(ADMIN),
    )
    assert response.status_code == 400


def test_categorize(client):
    response = client.post("/reports/categorize", json={"description": "Overflowing garbage near the market"}, headers=headers_for(REPORTER))
    assert response.status_code == 200
    assert response.json()["classification"]["category_id"] == "sanitation"


def test_audit_is_admin_only(client):
    assert client.get("/audit-logs", headers=headers_for(OFFICER)).status_code == 403
    assert client.get("/audit-logs/missing", headers=headers_for(ADMIN)).status_code == 404


def test_notification_endpoints(client):
    report = create_report(client)
    transition(client, report["id"], ADMIN, "assigned", extra={"assigned_officer_ids": [OFFICER.id]})
    transition(client, report["id"], ADMIN, "closed")

    assert client.get("/notifications/unread-count", headers=headers_for(REPORTER)).json()["unread"] == 2

    items = client.get("/notifications", headers=headers_for(REPORTER)).json()["items"]
    assert {i["type"] for i in items} == {"report.assigned", "report.closed"}
    assert all(i["message"] for i in items)

    # another user's ids are ignored
    response = client.post("/notifications/read", json={"ids": [items[0]["id"]]}, headers=headers_for(OTHER_REPORTER))
    assert response.json()["updated"] == 0

    response = client.post("/notifications/read", json={"ids": [items[0]["id"]]}, headers=headers_for(REPORTER))
    assert response.json()["updated"] == 1

    response = client.post("/notifications/read-all", headers=headers_for(REPORTER))
    assert response.json()["updated"] == 1
    assert client.get("/notifications/unread-count", headers=headers_for(REPORTER)).json()["unread"] == 0


def test_dispatch_failure_returns_502_with_committed_report(client):
    store = use_store(FlakyStore())
    report = create_report(client)

    response = transition(client, report["id"], ADMIN, "closed")

    assert response.status_code == 502
    body = response.json()
    assert body["committed"] is True
    assert body["report"]["status"] == "closed"
    assert body["dead_letters"][0]["type"] == "report.closed"
    assert store.get_report(report["id"]).status == ReportStatus.CLOSED

    dead = client.get("/admin/notifications/dead-letters", headers=headers_for(ADMIN)).json()["items"]
    assert len(dead) == 1

    store.fail_notifications = False
    retry = client.post("/admin/notifications/dead-letters/retry", headers=headers_for(ADMIN))
    assert retry.json()["result"] == {"retried": 1, "resolved": 1, "still_failing": 0}
    assert client.get("/notifications/unread-count", headers=headers_for(REPORTER)).json()["unread"] == 1


class DownStore(InMemoryReportStore):
    def get_report(self, report_id):
        raise StorageFailure("store offline")


def test_storage_failure_returns_503(client):
    use_store(DownStore())
    response = transition(client, "any", ADMIN, "closed")
    assert response.status_code == 503
    assert response.json()["detail"]["reason"] == "StorageFailure"
    assert client.get("/health/db").status_code == 503


def test_admin_registry_views(client):
    assert client.get("/admin/workflow/transitions", headers=headers_for(REPORTER)).status_code == 403

    transitions = client.get("/admin/workflow/transitions", headers=headers_for(ADMIN)).json()["transitions"]
    force_close = next(t for t in transitions if t["from"] == "in_progress" and t["to"] == "closed")
    assert force_close["action"] == "force_closed"
    assert force_close["roles"] == ["admin", "superadmin"]

    types = client.get("/admin/notifications/types", headers=headers_for(ADMIN)).json()
    assert types["version"] == 1
    assert "report.awaiting_verification" in types["types"]
    assert types["transitions"]["misrouted"] == "report.misrouted"
