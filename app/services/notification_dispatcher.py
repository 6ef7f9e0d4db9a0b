"""
Notification Dispatcher - creates notification records for accepted transitions.

DESIGN PRINCIPLES:
- Delivery here means creating a record; there is no push channel
- Notification ids are derived from (report, type, recipient, audit entry),
  so re-dispatching the same event never creates a duplicate
- Failed creations are retried a bounded number of times, then parked as
  dead letters; nothing is dropped silently
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import hashlib
import logging
import uuid

from app.core.errors import DispatchFailure, StorageFailure
from app.core.observability import inc
from app.core.settings import settings
from app.models.workflow import Actor, AuditEntry, DeadLetter, Notification, Report, ReportStatus, utc_now
from app.services.notification_types import TRANSITION_NOTIFICATIONS, ensure_known_type, format_notification
from app.services.report_store import ReportStore, get_report_store

logger = logging.getLogger(__name__)


def notification_key(report_id: str, notification_type: str, recipient_id: str, audit_entry_id: str) -> str:
    """Deterministic notification id for one event and one recipient."""
    raw = f"{report_id}|{notification_type}|{recipient_id}|{audit_entry_id}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


class NotificationDispatcher:
    """
    Service for creating, reading and acknowledging notifications.
    """

    def __init__(self, store: Optional[ReportStore] = None, max_attempts: Optional[int] = None):
        self.store = store or get_report_store()
        self.max_attempts = max(max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS, 1)

    def dispatch(
        self,
        notification_type: str,
        recipient_id: str,
        report_id: str,
        payload: Optional[Dict[str, Any]] = None,
        audit_entry_id: Optional[str] = None
    ) -> Notification:
        """
        Create one notification record.

        With an audit_entry_id the call is idempotent: dispatching the same
        (report, type, recipient, audit entry) again returns the existing row.

        Raises:
            UnknownNotificationType: type is not in the registry
            StorageFailure: the record could not be written
        """
        ensure_known_type(notification_type)
        notification_id = (
            notification_key(report_id, notification_type, recipient_id, audit_entry_id)
            if audit_entry_id
            else uuid.uuid4().hex
        )
        notification = Notification(
            id=notification_id,
            recipient_id=recipient_id,
            type=notification_type,
            report_id=report_id,
            payload=dict(payload or {}),
            audit_entry_id=audit_entry_id,
            created_at=utc_now(),
        )
        row, created = self.store.insert_notification(notification)
        if created:
            logger.info(f"🔔 Notification {notification_type} → {recipient_id} for report {report_id}")
        else:
            logger.info(f"Notification {row.id} already exists, re-dispatch skipped")
        return row

    def _dispatch_with_retry(self, notification_type, recipient_id, report_id, payload, audit_entry_id):
        """Returns (notification, None) on success or (None, dead_letter) once attempts run out."""
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.dispatch(notification_type, recipient_id, report_id, payload, audit_entry_id), None
            except StorageFailure as e:
                last_error = e
                logger.warning(
                    f"⚠️ Dispatch attempt {attempt}/{self.max_attempts} failed for {notification_type} → {recipient_id}: {e}"
                )

        dead_letter = DeadLetter(
            id=notification_key(report_id, notification_type, recipient_id, audit_entry_id or ""),
            type=notification_type,
            recipient_id=recipient_id,
            report_id=report_id,
            payload=dict(payload or {}),
            audit_entry_id=audit_entry_id,
            error=str(last_error),
            attempts=self.max_attempts,
            created_at=utc_now(),
        )
        inc("notification_dead_lettered", type=notification_type)
        try:
            self.store.save_dead_letter(dead_letter)
        except StorageFailure:
            logger.error(
                f"❌ Could not record dead letter for {notification_type} → {recipient_id} "
                f"(report {report_id}, audit {audit_entry_id})",
                exc_info=True,
            )
        return None, dead_letter

    def dispatch_for_transition(
        self,
        report: Report,
        target_status: ReportStatus,
        actor: Actor,
        audit_entry: AuditEntry
    ) -> List[Notification]:
        """
        Create the notifications a committed transition calls for.

        Args:
            report: Report as committed (after the transition)
            target_status: Status the report moved to
            actor: Who performed the transition
            audit_entry: The audit entry recorded for it (idempotency key)

        Returns:
            Notifications created (or found already existing)

        Raises:
            DispatchFailure: some notifications could not be created; they were dead-lettered
        """
        notice = TRANSITION_NOTIFICATIONS.get(target_status)
        if notice is None:
            logger.debug(f"No notification mapped for transition to {target_status.value}")
            return []

        payload = notice.payload(report, actor)
        recipients = list(dict.fromkeys(r for r in notice.recipients(report) if r))

        delivered = []
        dead_letters = []
        for recipient_id in recipients:
            notification, dead_letter = self._dispatch_with_retry(
                notice.type, recipient_id, report.id, payload, audit_entry.id
            )
            if notification is not None:
                delivered.append(notification)
            else:
                dead_letters.append(dead_letter)

        if dead_letters:
            raise DispatchFailure(
                f"{len(dead_letters)} notification(s) for report {report.id} could not be created",
                report=report,
                dead_letters=dead_letters,
            )
        return delivered

    def retry_dead_letters(self) -> Dict[str, int]:
        """
        Try once more to create every unresolved dead-lettered notification.

        Returns:
            Counts of dead letters retried, resolved and still failing
        """
        retried = resolved = still_failing = 0
        for dead_letter in self.store.list_dead_letters(include_resolved=False):
            retried += 1
            dead_letter.attempts += 1
            try:
                self.dispatch(
                    dead_letter.type,
                    dead_letter.recipient_id,
                    dead_letter.report_id,
                    dead_letter.payload,
                    dead_letter.audit_entry_id,
                )
            except StorageFailure as e:
                still_failing += 1
                dead_letter.error = str(e)
                logger.warning(f"⚠️ Dead letter {dead_letter.id} still failing: {e}")
            else:
                resolved += 1
                dead_letter.resolved_at = utc_now()
                logger.info(f"✅ Dead letter {dead_letter.id} delivered on retry")
            self.store.save_dead_letter(dead_letter)

        return {"retried": retried, "resolved": resolved, "still_failing": still_failing}

    def list_dead_letters(self, include_resolved: bool = False) -> List[DeadLetter]:
        return self.store.list_dead_letters(include_resolved=include_resolved)

    def list_for_recipient(self, recipient_id: str, unread_only: bool = False, limit: int = 100) -> List[Notification]:
        return self.store.list_notifications(recipient_id, unread_only=unread_only, limit=min(max(limit, 1), 100))

    def mark_read(self, notification_ids: List[str], recipient_id: Optional[str] = None) -> int:
        """
        Mark notifications read. Already-read and unknown ids are ignored.

        recipient_id restricts the update to that user's own notifications.
        """
        if not notification_ids:
            return 0
        return self.store.mark_read(notification_ids, utc_now(), recipient_id=recipient_id)

    def mark_all_read(self, recipient_id: str, before: Optional[datetime] = None) -> int:
        if before is not None and before.tzinfo is None:
            before = before.replace(tzinfo=timezone.utc)
        return self.store.mark_all_read(recipient_id, utc_now(), before=before)

    def unread_count(self, recipient_id: str) -> int:
        return self.store.unread_count(recipient_id)

    def format(self, notification: Notification) -> str:
        return format_notification(notification)
