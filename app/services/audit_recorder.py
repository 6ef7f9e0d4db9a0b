"""
Audit Recorder - append-only trail of accepted report mutations.

Entries are never updated or deleted. Diff values are copied to plain JSON
data when the entry is built, so history stays accurate after the report
changes again or is deleted.
"""

from typing import Any, Dict, Optional
import logging
import math
import uuid

from pydantic import TypeAdapter

from app.core.settings import settings
from app.models.workflow import Actor, AuditEntry, AuditPage, utc_now
from app.services.report_store import ReportStore, UnitOfWork, get_report_store

logger = logging.getLogger(__name__)

_plain = TypeAdapter(Any)


def plain_value(value: Any) -> Any:
    """Snapshot a value as JSON-compatible data (enums → values, models → dicts, copies of lists)."""
    return _plain.dump_python(value, mode="json")


def build_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff between two snapshots.

    Only fields whose plain values differ are included.
    """
    diff = {}
    for field in after:
        old = plain_value(before.get(field))
        new = plain_value(after.get(field))
        if old != new:
            diff[field] = {"before": old, "after": new}
    return diff


class AuditRecorder:
    """
    Service for writing and reading audit entries.
    """

    def __init__(self, store: Optional[ReportStore] = None):
        self.store = store or get_report_store()

    def new_entry(
        self,
        report_id: str,
        actor: Actor,
        action: str,
        diff: Optional[Dict[str, Dict[str, Any]]] = None,
        note: Optional[str] = None
    ) -> AuditEntry:
        """Build an entry; the store assigns its sequence number when it is appended."""
        return AuditEntry(
            id=uuid.uuid4().hex,
            report_id=report_id,
            actor_id=actor.id,
            actor_role=actor.role,
            action=action,
            diff=plain_value(diff or {}),
            note=note,
            created_at=utc_now(),
        )

    def append(self, entry: AuditEntry, uow: Optional[UnitOfWork] = None) -> AuditEntry:
        """
        Append an entry.

        With a unit of work the entry is only buffered and lands when the
        caller commits it together with the report update.
        """
        if uow is not None:
            uow.add_audit_entry(entry)
            return entry

        standalone = UnitOfWork()
        standalone.add_audit_entry(entry)
        stored = self.store.commit(standalone)[0]
        logger.info(f"📝 Audit entry {stored.id}: {stored.action} on report {stored.report_id} by {stored.actor_id}")
        return stored

    def get(self, entry_id: str) -> Optional[AuditEntry]:
        return self.store.get_audit_entry(entry_id)

    def query(
        self,
        report_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> AuditPage:
        """
        Page of audit entries, newest first.

        Args:
            report_id: Only entries for this report
            actor_id: Only entries written by this actor
            action: Only entries with this action (case-insensitive)
            page: 1-based page number (values < 1 are treated as 1)
            limit: Page size, clamped to [1, AUDIT_MAX_PAGE_SIZE]
        """
        page = max(page, 1)
        limit = min(max(limit, 1), settings.AUDIT_MAX_PAGE_SIZE)
        items, total = self.store.query_audit(
            report_id=report_id,
            actor_id=actor_id,
            action=action.strip().lower() if action else None,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return AuditPage(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=max(math.ceil(total / limit), 1),
        )
