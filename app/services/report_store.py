"""
Report Store - canonical persistence for reports, audit entries and notifications.

Two backends share one interface:
- InMemoryReportStore: process-local dicts guarded by a lock (USE_MOCK_DB, tests)
- FirestoreReportStore: Firestore collections, commits run in a transaction

Writes that must land together (a report update and its audit entry) go
through a UnitOfWork and are committed in one step. The commit re-checks the
report version (compare-and-set) so concurrent writers cannot both succeed.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import itertools
import logging
import threading

from pydantic import BaseModel

from app.core.errors import ConcurrentModification, StorageFailure
from app.core.settings import settings
from app.models.workflow import AuditEntry, DeadLetter, Notification, Report, ReportStatus

logger = logging.getLogger(__name__)


REPORTS = "reports"
AUDIT_ENTRIES = "audit_entries"
NOTIFICATIONS = "notifications"
DEAD_LETTERS = "notification_dead_letters"
COUNTERS = "counters"


class UnitOfWork:
    """
    Buffered writes committed atomically by ReportStore.commit().

    expected_version is the version the report was loaded at; None means the
    report is new and must not exist yet.
    """

    def __init__(self):
        self.report: Optional[Report] = None
        self.expected_version: Optional[int] = None
        self.audit_entries: List[AuditEntry] = []

    def put_report(self, report: Report, expected_version: Optional[int] = None):
        self.report = report
        self.expected_version = expected_version

    def add_audit_entry(self, entry: AuditEntry):
        self.audit_entries.append(entry)


class ReportStore(ABC):
    """Storage contract used by the workflow services."""

    @abstractmethod
    def get_report(self, report_id: str) -> Optional[Report]:
        pass

    @abstractmethod
    def list_reports(
        self,
        statuses: Optional[List[ReportStatus]] = None,
        reporter_id: Optional[str] = None,
        assigned_officer_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Report], int]:
        """Reports newest first, plus the total matching count."""
        pass

    @abstractmethod
    def commit(self, uow: UnitOfWork) -> List[AuditEntry]:
        """
        Apply all writes in uow atomically.

        Returns the audit entries as stored (with their sequence numbers).

        Raises:
            ConcurrentModification: report version changed since it was loaded
            StorageFailure: backend error, nothing was written
        """
        pass

    @abstractmethod
    def get_audit_entry(self, entry_id: str) -> Optional[AuditEntry]:
        pass

    @abstractmethod
    def query_audit(
        self,
        report_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        offset: int = 0,
        limit: int = 50
    ) -> Tuple[List[AuditEntry], int]:
        """Audit entries newest first (created_at, then sequence), plus the total."""
        pass

    @abstractmethod
    def insert_notification(self, notification: Notification) -> Tuple[Notification, bool]:
        """Create the notification unless its id exists. Returns (row, created)."""
        pass

    @abstractmethod
    def get_notification(self, notification_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    def list_notifications(self, recipient_id: str, unread_only: bool = False, limit: int = 100) -> List[Notification]:
        pass

    @abstractmethod
    def mark_read(self, notification_ids: List[str], read_at: datetime, recipient_id: Optional[str] = None) -> int:
        pass

    @abstractmethod
    def mark_all_read(self, recipient_id: str, read_at: datetime, before: Optional[datetime] = None) -> int:
        pass

    @abstractmethod
    def unread_count(self, recipient_id: str) -> int:
        pass

    @abstractmethod
    def save_dead_letter(self, dead_letter: DeadLetter) -> DeadLetter:
        pass

    @abstractmethod
    def list_dead_letters(self, include_resolved: bool = False) -> List[DeadLetter]:
        pass


def _to_document(model: BaseModel) -> Dict:
    """Plain dict for storage: enums flattened to their values, nested data deep-copied."""
    data = model.model_dump()
    data.pop("id", None)
    return {key: (value.value if isinstance(value, Enum) else value) for key, value in data.items()}


class InMemoryReportStore(ReportStore):
    """
    Process-local store.

    Every read and write copies models so callers never share mutable state
    with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._reports: Dict[str, Report] = {}
        self._audit: Dict[str, AuditEntry] = {}
        self._notifications: Dict[str, Notification] = {}
        self._dead_letters: Dict[str, DeadLetter] = {}
        self._sequence = itertools.count(1)

    def get_report(self, report_id):
        with self._lock:
            report = self._reports.get(report_id)
            return report.model_copy(deep=True) if report else None

    def list_reports(self, statuses=None, reporter_id=None, assigned_officer_id=None, offset=0, limit=20):
        with self._lock:
            matches = []
            for report in self._reports.values():
                if statuses is not None and report.status not in statuses:
                    continue
                if reporter_id and report.reporter_id != reporter_id:
                    continue
                if assigned_officer_id and not report.is_assigned_to(assigned_officer_id):
                    continue
                matches.append(report)

            matches.sort(key=lambda r: r.created_at, reverse=True)
            page = matches[offset:offset + limit]
            return [r.model_copy(deep=True) for r in page], len(matches)

    def commit(self, uow):
        with self._lock:
            if uow.report is not None:
                existing = self._reports.get(uow.report.id)
                if uow.expected_version is None:
                    if existing is not None:
                        raise StorageFailure(f"Report {uow.report.id} already exists")
                elif existing is None:
                    raise StorageFailure(f"Report {uow.report.id} disappeared before commit")
                elif existing.version != uow.expected_version:
                    raise ConcurrentModification(uow.report.id, uow.expected_version, existing.version)

            stored_entries = []
            for entry in uow.audit_entries:
                if entry.id in self._audit:
                    raise StorageFailure(f"Audit entry {entry.id} already exists")
                stored_entries.append(entry.model_copy(update={"sequence": next(self._sequence)}, deep=True))

            # Nothing is written until every check above has passed
            if uow.report is not None:
                self._reports[uow.report.id] = uow.report.model_copy(deep=True)
            for entry in stored_entries:
                self._audit[entry.id] = entry

            return [e.model_copy(deep=True) for e in stored_entries]

    def get_audit_entry(self, entry_id):
        with self._lock:
            entry = self._audit.get(entry_id)
            return entry.model_copy(deep=True) if entry else None

    def query_audit(self, report_id=None, actor_id=None, action=None, offset=0, limit=50):
        with self._lock:
            matches = [
                e for e in self._audit.values()
                if (report_id is None or e.report_id == report_id)
                and (actor_id is None or e.actor_id == actor_id)
                and (action is None or e.action.lower() == action.lower())
            ]
            matches.sort(key=lambda e: (e.created_at, e.sequence), reverse=True)
            return [e.model_copy(deep=True) for e in matches[offset:offset + limit]], len(matches)

    def insert_notification(self, notification):
        with self._lock:
            existing = self._notifications.get(notification.id)
            if existing is not None:
                return existing.model_copy(deep=True), False
            self._notifications[notification.id] = notification.model_copy(deep=True)
            return notification.model_copy(deep=True), True

    def get_notification(self, notification_id):
        with self._lock:
            row = self._notifications.get(notification_id)
            return row.model_copy(deep=True) if row else None

    def list_notifications(self, recipient_id, unread_only=False, limit=100):
        with self._lock:
            rows = [
                n for n in self._notifications.values()
                if n.recipient_id == recipient_id and (not unread_only or n.read_at is None)
            ]
            rows.sort(key=lambda n: n.created_at, reverse=True)
            return [n.model_copy(deep=True) for n in rows[:limit]]

    def mark_read(self, notification_ids, read_at, recipient_id=None):
        count = 0
        with self._lock:
            for notification_id in set(notification_ids):
                row = self._notifications.get(notification_id)
                if row is None or row.read_at is not None:
                    continue
                if recipient_id is not None and row.recipient_id != recipient_id:
                    continue
                row.read_at = read_at
                count += 1
        return count

    def mark_all_read(self, recipient_id, read_at, before=None):
        count = 0
        with self._lock:
            for row in self._notifications.values():
                if row.recipient_id != recipient_id or row.read_at is not None:
                    continue
                if before is not None and row.created_at > before:
                    continue
                row.read_at = read_at
                count += 1
        return count

    def unread_count(self, recipient_id):
        with self._lock:
            return sum(
                1 for n in self._notifications.values()
                if n.recipient_id == recipient_id and n.read_at is None
            )

    def save_dead_letter(self, dead_letter):
        with self._lock:
            self._dead_letters[dead_letter.id] = dead_letter.model_copy(deep=True)
            return dead_letter.model_copy(deep=True)

    def list_dead_letters(self, include_resolved=False):
        with self._lock:
            rows = [
                d for d in self._dead_letters.values()
                if include_resolved or d.resolved_at is None
            ]
            rows.sort(key=lambda d: d.created_at)
            return [d.model_copy(deep=True) for d in rows]


class FirestoreReportStore(ReportStore):
    """
    Firestore-backed store.

    Commits run inside a Firestore transaction that reads the report and the
    audit sequence counter, checks the version, then writes everything.
    Multi-field queries need the matching composite indexes in Firestore.
    """

    def __init__(self, db):
        from firebase_admin import firestore

        self.db = db
        self._firestore = firestore

    def _run(self, description: str, fn):
        from google.api_core import exceptions as google_exceptions

        try:
            return fn()
        except ConcurrentModification:
            raise
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"❌ Firestore {description} failed: {e}", exc_info=True)
            raise StorageFailure(f"Firestore {description} failed: {e}") from e

    def get_report(self, report_id):
        def _get():
            doc = self.db.collection(REPORTS).document(report_id).get()
            if not doc.exists:
                return None
            return Report.model_validate({**doc.to_dict(), "id": doc.id})

        return self._run("get_report", _get)

    def list_reports(self, statuses=None, reporter_id=None, assigned_officer_id=None, offset=0, limit=20):
        from app.utils.firestore_helpers import where_filter

        def _list():
            query = self.db.collection(REPORTS)
            if statuses is not None:
                query = where_filter(query, "status", "in", [s.value for s in statuses])
            if reporter_id:
                query = where_filter(query, "reporter_id", "==", reporter_id)
            if assigned_officer_id:
                query = where_filter(query, "assigned_officer_ids", "array_contains", assigned_officer_id)

            total = query.count(alias="total").get()[0][0].value
            docs = (
                query.order_by("created_at", direction=self._firestore.Query.DESCENDING)
                .offset(offset)
                .limit(limit)
                .stream()
            )
            items = [Report.model_validate({**doc.to_dict(), "id": doc.id}) for doc in docs]
            return items, int(total)

        return self._run("list_reports", _list)

    def commit(self, uow):
        firestore = self._firestore
        db = self.db

        @firestore.transactional
        def _commit(transaction):
            # Firestore transactions require all reads before any write
            report_ref = None
            if uow.report is not None:
                report_ref = db.collection(REPORTS).document(uow.report.id)
                snapshot = report_ref.get(transaction=transaction)
                if uow.expected_version is None:
                    if snapshot.exists:
                        raise StorageFailure(f"Report {uow.report.id} already exists")
                elif not snapshot.exists:
                    raise StorageFailure(f"Report {uow.report.id} disappeared before commit")
                else:
                    current_version = snapshot.to_dict().get("version")
                    if current_version != uow.expected_version:
                        raise ConcurrentModification(uow.report.id, uow.expected_version, current_version)

            counter_ref = db.collection(COUNTERS).document(AUDIT_ENTRIES)
            counter = counter_ref.get(transaction=transaction)
            sequence = (counter.to_dict() or {}).get("value", 0) if counter.exists else 0

            stored_entries = []
            for entry in uow.audit_entries:
                sequence += 1
                stored = entry.model_copy(update={"sequence": sequence}, deep=True)
                transaction.create(db.collection(AUDIT_ENTRIES).document(stored.id), _to_document(stored))
                stored_entries.append(stored)

            if stored_entries:
                transaction.set(counter_ref, {"value": sequence})
            if report_ref is not None:
                transaction.set(report_ref, _to_document(uow.report))
            return stored_entries

        return self._run("commit", lambda: _commit(db.transaction()))

    def get_audit_entry(self, entry_id):
        def _get():
            doc = self.db.collection(AUDIT_ENTRIES).document(entry_id).get()
            if not doc.exists:
                return None
            return AuditEntry.model_validate({**doc.to_dict(), "id": doc.id})

        return self._run("get_audit_entry", _get)

    def query_audit(self, report_id=None, actor_id=None, action=None, offset=0, limit=50):
        from app.utils.firestore_helpers import where_filter

        def _query():
            query = self.db.collection(AUDIT_ENTRIES)
            if report_id:
                query = where_filter(query, "report_id", "==", report_id)
            if actor_id:
                query = where_filter(query, "actor_id", "==", actor_id)
            if action:
                query = where_filter(query, "action", "==", action)

            total = query.count(alias="total").get()[0][0].value
            docs = (
                query.order_by("created_at", direction=self._firestore.Query.DESCENDING)
                .order_by("sequence", direction=self._firestore.Query.DESCENDING)
                .offset(offset)
                .limit(limit)
                .stream()
            )
            items = [AuditEntry.model_validate({**doc.to_dict(), "id": doc.id}) for doc in docs]
            return items, int(total)

        return self._run("query_audit", _query)

    def insert_notification(self, notification):
        from google.api_core import exceptions as google_exceptions

        def _insert():
            ref = self.db.collection(NOTIFICATIONS).document(notification.id)
            try:
                ref.create(_to_document(notification))
            except google_exceptions.AlreadyExists:
                doc = ref.get()
                return Notification.model_validate({**doc.to_dict(), "id": doc.id}), False
            return notification, True

        return self._run("insert_notification", _insert)

    def get_notification(self, notification_id):
        def _get():
            doc = self.db.collection(NOTIFICATIONS).document(notification_id).get()
            if not doc.exists:
                return None
            return Notification.model_validate({**doc.to_dict(), "id": doc.id})

        return self._run("get_notification", _get)

    def list_notifications(self, recipient_id, unread_only=False, limit=100):
        from app.utils.firestore_helpers import where_filter

        def _list():
            query = where_filter(self.db.collection(NOTIFICATIONS), "recipient_id", "==", recipient_id)
            if unread_only:
                query = where_filter(query, "read_at", "==", None)
            docs = query.order_by("created_at", direction=self._firestore.Query.DESCENDING).limit(limit).stream()
            return [Notification.model_validate({**doc.to_dict(), "id": doc.id}) for doc in docs]

        return self._run("list_notifications", _list)

    def mark_read(self, notification_ids, read_at, recipient_id=None):
        def _mark():
            batch = self.db.batch()
            count = 0
            for notification_id in set(notification_ids):
                ref = self.db.collection(NOTIFICATIONS).document(notification_id)
                doc = ref.get()
                if not doc.exists:
                    continue
                data = doc.to_dict()
                if data.get("read_at") is not None:
                    continue
                if recipient_id is not None and data.get("recipient_id") != recipient_id:
                    continue
                batch.update(ref, {"read_at": read_at})
                count += 1
            if count:
                batch.commit()
            return count

        return self._run("mark_read", _mark)

    def mark_all_read(self, recipient_id, read_at, before=None):
        from app.utils.firestore_helpers import where_filter

        def _mark():
            query = where_filter(self.db.collection(NOTIFICATIONS), "recipient_id", "==", recipient_id)
            query = where_filter(query, "read_at", "==", None)
            if before is not None:
                query = where_filter(query, "created_at", "<=", before)
            batch = self.db.batch()
            count = 0
            for doc in query.stream():
                batch.update(doc.reference, {"read_at": read_at})
                count += 1
                # Firestore caps a batch at 500 writes
                if count % 500 == 0:
                    batch.commit()
                    batch = self.db.batch()
            if count % 500:
                batch.commit()
            return count

        return self._run("mark_all_read", _mark)

    def unread_count(self, recipient_id):
        from app.utils.firestore_helpers import where_filter

        def _count():
            query = where_filter(self.db.collection(NOTIFICATIONS), "recipient_id", "==", recipient_id)
            query = where_filter(query, "read_at", "==", None)
            return int(query.count(alias="total").get()[0][0].value)

        return self._run("unread_count", _count)

    def save_dead_letter(self, dead_letter):
        def _save():
            self.db.collection(DEAD_LETTERS).document(dead_letter.id).set(_to_document(dead_letter))
            return dead_letter

        return self._run("save_dead_letter", _save)

    def list_dead_letters(self, include_resolved=False):
        from app.utils.firestore_helpers import where_filter

        def _list():
            query = self.db.collection(DEAD_LETTERS)
            if not include_resolved:
                query = where_filter(query, "resolved_at", "==", None)
            docs = query.order_by("created_at").stream()
            return [DeadLetter.model_validate({**doc.to_dict(), "id": doc.id}) for doc in docs]

        return self._run("list_dead_letters", _list)


# Global store instance (singleton pattern)
_report_store: Optional[ReportStore] = None
_store_lock = threading.Lock()


def get_report_store() -> ReportStore:
    """
    Get or create the configured ReportStore.

    USE_MOCK_DB selects the in-memory backend; otherwise Firestore.
    """
    global _report_store
    with _store_lock:
        if _report_store is None:
            if settings.USE_MOCK_DB:
                logger.info("[STORE] USING IN-MEMORY REPORT STORE")
                _report_store = InMemoryReportStore()
            else:
                from app.config.firebase import get_db

                logger.info("[STORE] USING FIRESTORE REPORT STORE")
                _report_store = FirestoreReportStore(get_db())
        return _report_store


def set_report_store(store: Optional[ReportStore]):
    """Replace the global store (used by tests and the app factory)."""
    global _report_store
    with _store_lock:
        _report_store = store
