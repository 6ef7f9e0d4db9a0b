from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app.core.settings import settings
from app.models.workflow import AuditEntry, ReportStatus
from app.services.audit_recorder import AuditRecorder, build_diff, plain_value
from app.services.workflow_service import get_workflow_service

from conftest import ADMIN, OFFICER, SUPERADMIN


def test_identical_timestamps_order_by_sequence(store):
    recorder = AuditRecorder(store)
    fixed = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ids = []
    for action in ("created", "assigned", "status_changed"):
        entry = recorder.new_entry("r-1", ADMIN, action).model_copy(update={"created_at": fixed})
        ids.append(recorder.append(entry).id)

    page = recorder.query(report_id="r-1")
    assert [e.id for e in page.items] == list(reversed(ids))
    assert [e.sequence for e in page.items] == sorted((e.sequence for e in page.items), reverse=True)


def test_pagination(store):
    recorder = AuditRecorder(store)
    for _ in range(5):
        recorder.append(recorder.new_entry("r-1", ADMIN, "status_changed"))

    page = recorder.query(report_id="r-1", page=3, limit=2)
    assert len(page.items) == 1
    assert page.total == 5
    assert page.total_pages == 3
    assert page.page == 3


def test_page_and_limit_are_clamped(store):
    recorder = AuditRecorder(store)
    recorder.append(recorder.new_entry("r-1", ADMIN, "created"))

    assert recorder.query(limit=10_000).limit == settings.AUDIT_MAX_PAGE_SIZE
    assert recorder.query(limit=0).limit == 1
    page = recorder.query(page=0)
    assert page.page == 1
    assert page.total == 1


def test_empty_query_has_one_page(store):
    page = AuditRecorder(store).query(report_id="nothing")
    assert page.items == []
    assert page.total == 0
    assert page.total_pages == 1


def test_filters(store):
    recorder = AuditRecorder(store)
    recorder.append(recorder.new_entry("r-1", ADMIN, "assigned"))
    recorder.append(recorder.new_entry("r-1", OFFICER, "status_changed"))
    recorder.append(recorder.new_entry("r-2", OFFICER, "status_changed"))

    assert recorder.query(actor_id=OFFICER.id).total == 2
    assert recorder.query(action="STATUS_CHANGED").total == 2
    assert recorder.query(report_id="r-1", actor_id=OFFICER.id).total == 1


def test_entries_are_immutable(store):
    assert AuditEntry.model_config["frozen"] is True
    recorder = AuditRecorder(store)
    entry = recorder.append(recorder.new_entry("r-1", ADMIN, "created"))
    with pytest.raises(ValidationError):
        entry.action = "tampered"
    assert recorder.get(entry.id).action == "created"
    assert recorder.get("missing") is None


def test_diff_is_a_plain_snapshot():
    photos = ["a"]
    diff = build_diff(
        {"status": ReportStatus.ASSIGNED, "photos_after": []},
        {"status": ReportStatus.IN_PROGRESS, "photos_after": photos},
    )
    photos.append("b")

    assert diff == {
        "status": {"before": "assigned", "after": "in_progress"},
        "photos_after": {"before": [], "after": ["a"]},
    }


def test_diff_skips_unchanged_fields():
    assert build_diff({"status": "closed", "note": None}, {"status": "closed", "note": None}) == {}


def test_plain_value_flattens_enums():
    assert plain_value([ReportStatus.CLOSED]) == ["closed"]


def test_history_survives_delete(store, make_report):
    report = make_report(ReportStatus.VERIFIED)
    service = get_workflow_service()
    service.apply_transition(report.id, "closed", ADMIN)
    service.apply_transition(report.id, "deleted", SUPERADMIN)

    page = AuditRecorder(store).query(report_id=report.id)
    assert [e.action for e in page.items] == ["deleted", "status_changed"]
    assert page.items[1].diff["status"] == {"before": "verified", "after": "closed"}
