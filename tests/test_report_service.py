from app.core.settings import settings
from app.models.workflow import ReportCreate, ReportStatus
from app.services.audit_recorder import AuditRecorder
from app.services.classifier import Classification
from app.services.report_service import ReportService, can_view_report

from conftest import ADMIN, OFFICER, OTHER_REPORTER, REPORTER


class StubClassifier:
    def __init__(self, category_id=None, confidence=0.0):
        self.result = Classification(category_id, confidence, model_name="stub")
        self.calls = []

    def __call__(self, text, categories=None):
        self.calls.append(text)
        return self.result


def service(store, classifier=None):
    return ReportService(store, classifier=classifier or StubClassifier())


def test_create_report_starts_submitted_with_created_entry(store):
    classifier = StubClassifier("water", 0.95)
    payload = ReportCreate(
        title="  Leaking pipe ",
        description="Water leaking from the main pipeline",
        category_id="water",
        photos_before=["https://cdn.example/before.jpg", {"url": "https://cdn.example/2.jpg"}],
    )

    report = service(store, classifier).create_report(REPORTER, payload)

    assert report.status == ReportStatus.SUBMITTED
    assert report.version == 1
    assert report.reporter_id == REPORTER.id
    assert report.title == "Leaking pipe"
    assert report.photos_before == ["https://cdn.example/before.jpg", "https://cdn.example/2.jpg"]
    assert classifier.calls == []
    assert store.get_report(report.id) == report

    entries = AuditRecorder(store).query(report_id=report.id).items
    assert [e.action for e in entries] == ["created"]
    assert entries[0].diff["status"] == {"before": None, "after": "submitted"}


def test_confident_classification_sets_category(store):
    payload = ReportCreate(title="Pothole", description="Pothole on the road")
    report = service(store, StubClassifier("roads", 0.9)).create_report(REPORTER, payload)

    assert report.category_id == "roads"
    assert report.classification["category_id"] == "roads"
    assert report.classification["model_name"] == "stub"


def test_weak_classification_is_only_recorded(store):
    payload = ReportCreate(title="Something", description="Something is wrong")
    report = service(store, StubClassifier("roads", settings.CLASSIFIER_MIN_CONFIDENCE - 0.1)).create_report(REPORTER, payload)

    assert report.category_id is None
    assert report.classification["category_id"] == "roads"


def test_reporters_only_see_their_own_reports(store, make_report):
    own = make_report(reporter_id=REPORTER.id)
    other = make_report(reporter_id=OTHER_REPORTER.id)
    svc = service(store)

    assert svc.get_report(own.id, REPORTER) is not None
    assert svc.get_report(other.id, REPORTER) is None
    assert svc.get_report(other.id, OFFICER) is not None
    assert can_view_report(ADMIN, other)

    listed = svc.list_reports(REPORTER, reporter_id=OTHER_REPORTER.id)
    assert [r.id for r in listed["items"]] == [own.id]


def test_deleted_reports_are_hidden_by_default(store, make_report):
    live = make_report(ReportStatus.SUBMITTED)
    gone = make_report(ReportStatus.DELETED)
    svc = service(store)

    assert {r.id for r in svc.list_reports(ADMIN)["items"]} == {live.id}
    assert {r.id for r in svc.list_reports(ADMIN, include_deleted=True)["items"]} == {live.id, gone.id}
    assert [r.id for r in svc.list_reports(ADMIN, status=ReportStatus.DELETED)["items"]] == [gone.id]

    # officers cannot opt in
    assert {r.id for r in svc.list_reports(OFFICER, include_deleted=True)["items"]} == {live.id}
    assert svc.list_reports(OFFICER, status=ReportStatus.DELETED)["items"] == []


def test_deleted_listing_can_be_switched_off(store, make_report, monkeypatch):
    make_report(ReportStatus.DELETED)
    monkeypatch.setattr(settings, "LIST_DELETED_FOR_ADMINS", False)
    assert service(store).list_reports(ADMIN, include_deleted=True)["items"] == []


def test_list_filters_and_pagination(store, make_report):
    for _ in range(3):
        make_report(ReportStatus.ASSIGNED, assigned_officer_ids=[OFFICER.id])
    make_report(ReportStatus.SUBMITTED)
    svc = service(store)

    result = svc.list_reports(ADMIN, status=ReportStatus.ASSIGNED, page=2, limit=2)
    assert len(result["items"]) == 1
    assert result["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}

    assert svc.list_reports(ADMIN, assigned_officer_id=OFFICER.id)["pagination"]["total"] == 3
    assert svc.list_reports(ADMIN, limit=1000)["pagination"]["limit"] == 100


def test_suggest_category_stores_nothing(store):
    result = service(store, StubClassifier("parks", 0.7)).suggest_category("Fallen tree in the park")
    assert result["category_id"] == "parks"
    assert store.list_reports()[1] == 0
