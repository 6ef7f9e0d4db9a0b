import pathlib
import sys
import uuid

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.errors import StorageFailure
from app.core.observability import reset_counters
from app.models.workflow import Actor, Report, ReportStatus, Role
from app.services.report_service import reset_report_service
from app.services.report_store import InMemoryReportStore, UnitOfWork, set_report_store
from app.services.workflow_service import reset_workflow_service

REPORTER = Actor(id="citizen-1", role=Role.REPORTER, name="Ravi")
OTHER_REPORTER = Actor(id="citizen-2", role=Role.REPORTER)
OFFICER = Actor(id="officer-1", role=Role.OFFICER, name="Meera")
OTHER_OFFICER = Actor(id="officer-2", role=Role.OFFICER)
ADMIN = Actor(id="admin-1", role=Role.ADMIN, name="Asha")
SUPERADMIN = Actor(id="root-1", role=Role.SUPERADMIN)


def headers_for(actor: Actor) -> dict:
    headers = {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value}
    if actor.name:
        headers["X-Actor-Name"] = actor.name
    return headers


def use_store(store):
    """Install store as the global backend and drop services bound to the previous one."""
    set_report_store(store)
    reset_workflow_service()
    reset_report_service()
    return store


class FlakyStore(InMemoryReportStore):
    """Notification writes fail until fail_notifications is cleared."""

    def __init__(self):
        super().__init__()
        self.fail_notifications = True
        self.notification_attempts = 0

    def insert_notification(self, notification):
        if self.fail_notifications:
            self.notification_attempts += 1
            raise StorageFailure("notifications collection unavailable")
        return super().insert_notification(notification)


@pytest.fixture(autouse=True)
def store():
    reset_counters()
    yield use_store(InMemoryReportStore())
    use_store(None)


@pytest.fixture
def make_report(store):
    """Put a report straight into the store at any status (bypasses the workflow)."""
    def _make(status: ReportStatus = ReportStatus.SUBMITTED, target_store=None, **fields):
        fields.setdefault("id", uuid.uuid4().hex)
        fields.setdefault("title", "Pothole on Station Road")
        fields.setdefault("description", "Large pothole near the bus stop")
        fields.setdefault("reporter_id", REPORTER.id)
        report = Report(status=status, **fields)
        uow = UnitOfWork()
        uow.put_report(report)
        (target_store or store).commit(uow)
        return report

    return _make


@pytest.fixture
def client() -> TestClient:
    from app.main import app

    return TestClient(app)
