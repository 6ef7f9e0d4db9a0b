from app.core.errors import StorageFailure
from app.models.workflow import DenyReason, ReportStatus, TransitionExtra, TransitionResult
from app.services.bulk_operations import BulkOperationCoordinator, get_bulk_coordinator
from app.services.workflow_service import get_workflow_service

from conftest import ADMIN, OFFICER


def test_partial_failure_keeps_going(store, make_report):
    a = make_report(ReportStatus.ASSIGNED, assigned_officer_ids=[OFFICER.id])
    b = make_report(ReportStatus.CLOSED)
    c = make_report(ReportStatus.ASSIGNED, assigned_officer_ids=[OFFICER.id])

    result = get_bulk_coordinator().bulk_apply([a.id, b.id, c.id], "in_progress", ADMIN)

    assert result.updated == [a.id, c.id]
    assert [(f.id, f.reason) for f in result.failed] == [(b.id, "InvalidTransition")]
    assert store.get_report(a.id).status == ReportStatus.IN_PROGRESS
    assert store.get_report(b.id).status == ReportStatus.CLOSED


def test_duplicates_processed_once_and_missing_ids_reported(store, make_report):
    a = make_report(ReportStatus.VERIFIED)

    result = get_bulk_coordinator().bulk_apply([a.id, "missing", a.id], "closed", ADMIN)

    assert result.updated == [a.id]
    assert [(f.id, f.reason) for f in result.failed] == [("missing", DenyReason.NOT_FOUND.value)]
    assert store.get_report(a.id).version == 2


def test_extra_applies_to_every_item(store, make_report):
    ids = [make_report(ReportStatus.SUBMITTED).id for _ in range(3)]

    result = get_bulk_coordinator().bulk_apply(ids, "assigned", ADMIN, extra=TransitionExtra(assigned_officer_ids=[OFFICER.id]))

    assert result.updated == ids
    assert all(store.get_report(i).assigned_officer_ids == [OFFICER.id] for i in ids)


def test_admin_bulk_assign_without_extra(store, make_report):
    a = make_report(ReportStatus.SUBMITTED)
    b = make_report(ReportStatus.MISROUTED, misroute_reason="wrong ward")

    result = get_bulk_coordinator().bulk_apply([a.id, b.id], "assigned", ADMIN)

    assert result.updated == [a.id, b.id]
    assert result.failed == []
    assert store.get_report(a.id).status == ReportStatus.ASSIGNED
    assert store.get_report(b.id).version == 2


def test_thread_pool_preserves_input_order(store, make_report):
    ids = [make_report(ReportStatus.VERIFIED).id for _ in range(6)]

    result = BulkOperationCoordinator(get_workflow_service(), max_workers=4).bulk_apply(ids, "closed", ADMIN)

    assert result.updated == ids
    assert result.failed == []
    assert all(store.get_report(i).version == 2 for i in ids)


class ExplodingWorkflow:
    def apply_transition(self, report_id, requested_status, actor, expected_version=None, extra=None):
        if report_id == "boom":
            raise RuntimeError("kaboom")
        if report_id == "down":
            raise StorageFailure("store offline")
        return TransitionResult.denied(DenyReason.UNAUTHORIZED, "nope")


def test_unexpected_errors_never_abort_the_batch():
    result = BulkOperationCoordinator(ExplodingWorkflow(), max_workers=1).bulk_apply(["boom", "down", "x"], "closed", ADMIN)

    assert result.updated == []
    assert [(f.id, f.reason) for f in result.failed] == [
        ("boom", "InternalError"),
        ("down", "StorageFailure"),
        ("x", "Unauthorized"),
    ]
