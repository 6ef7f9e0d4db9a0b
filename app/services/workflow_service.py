"""
Workflow Service - single entry point for report mutations.

Every status change runs the same unit of work:
validate → persist (version + 1) → audit → notify.

The report update and its audit entry commit together in one store
operation. Notifications are created afterwards with idempotent keys; if
they still fail after retries they are dead-lettered and DispatchFailure is
raised, but the committed update is kept and logged for operators.
"""

from typing import Any, Dict, List, Optional, Union
import logging

from app.core.errors import ConcurrentModification, DispatchFailure
from app.core.observability import inc
from app.core.settings import settings
from app.models.workflow import (
    Actor,
    DenyReason,
    Report,
    ReportStatus,
    TransitionExtra,
    TransitionResult,
    normalize_photos,
    utc_now,
)
from app.services.audit_recorder import AuditRecorder, build_diff
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.report_store import ReportStore, UnitOfWork, get_report_store
from app.services.status_workflow import TransitionValidator, resolve_assignment

logger = logging.getLogger(__name__)

ACTION_ADDED_AFTER_PHOTOS = "added_after_photos"
ACTION_RESTORED = "restored"

# Report fields a workflow mutation may change; the audit diff covers these
TRACKED_FIELDS = ("status", "assigned_officer_ids", "photos_after", "misroute_reason", "status_before_delete")


def _snapshot(report: Report) -> Dict[str, Any]:
    return {field: getattr(report, field) for field in TRACKED_FIELDS}


class WorkflowService:
    """
    Orchestrates validator, store, audit recorder and notification dispatcher.
    """

    def __init__(
        self,
        store: Optional[ReportStore] = None,
        validator: Optional[TransitionValidator] = None,
        audit: Optional[AuditRecorder] = None,
        dispatcher: Optional[NotificationDispatcher] = None
    ):
        self.store = store or get_report_store()
        self.validator = validator or TransitionValidator(
            officer_can_verify=settings.OFFICER_CAN_VERIFY,
            max_after_photos=settings.MAX_AFTER_PHOTOS,
        )
        self.audit = audit or AuditRecorder(self.store)
        self.dispatcher = dispatcher or NotificationDispatcher(self.store)

    def _load(self, report_id: str, expected_version: Optional[int]):
        """Returns (report, None) or (None, denial)."""
        report = self.store.get_report(report_id)
        if report is None:
            return None, TransitionResult.denied(DenyReason.NOT_FOUND, f"Report {report_id} not found")
        if expected_version is not None and expected_version != report.version:
            return None, TransitionResult.denied(
                DenyReason.VERSION_CONFLICT,
                f"Report {report_id} is at version {report.version}, expected {expected_version}"
            )
        return report, None

    def _commit(self, before: Report, after: Report, actor: Actor, action: str, note: Optional[str] = None):
        """
        Persist after (version + 1) with one audit entry in a single unit of work.

        Returns (report, audit_entry, None) or (None, None, denial) on a concurrent update.
        """
        after.version = before.version + 1
        after.updated_at = utc_now()

        entry = self.audit.new_entry(
            report_id=before.id,
            actor=actor,
            action=action,
            diff=build_diff(_snapshot(before), _snapshot(after)),
            note=note,
        )
        uow = UnitOfWork()
        uow.put_report(after, expected_version=before.version)
        self.audit.append(entry, uow)

        try:
            stored_entry = self.store.commit(uow)[0]
        except ConcurrentModification as e:
            logger.warning(f"⚠️ Concurrent update on report {before.id}: {e}")
            return None, None, TransitionResult.denied(DenyReason.VERSION_CONFLICT, str(e))

        return after, stored_entry, None

    def apply_transition(
        self,
        report_id: str,
        requested_status: Union[str, ReportStatus],
        actor: Actor,
        expected_version: Optional[int] = None,
        extra: Optional[TransitionExtra] = None
    ) -> TransitionResult:
        """
        Move a report to requested_status on behalf of actor.

        Args:
            report_id: Report to transition
            requested_status: Target status
            actor: Acting principal (id + role), trusted input
            expected_version: Optimistic concurrency token; None skips the check
            extra: Assignment, after-photos, misroute reason, note

        Returns:
            TransitionResult with the updated report, or a typed denial
            (NotFound, VersionConflict, InvalidTransition, Unauthorized, PreconditionFailed)

        Raises:
            StorageFailure: store read or commit failed (nothing committed)
            DispatchFailure: committed, but notifications were dead-lettered
        """
        extra = extra or TransitionExtra()

        report, denial = self._load(report_id, expected_version)
        if denial:
            inc("transition_denied", reason=denial.reason.value)
            return denial

        decision = self.validator.validate(report, requested_status, actor, extra)
        if not decision.ok:
            logger.warning(
                f"⚠️ Transition denied for report {report_id} by {actor.id} ({actor.role.value}): "
                f"{decision.reason.value} - {decision.message}"
            )
            inc("transition_denied", reason=decision.reason.value)
            return TransitionResult.denied(decision.reason, decision.message)

        rule = decision.rule
        updated = report.model_copy(deep=True)
        updated.status = rule.target
        updated.assigned_officer_ids = resolve_assignment(report, rule.target, actor, extra)
        if extra.photos_after:
            updated.photos_after = report.photos_after + normalize_photos(extra.photos_after)
        if rule.target == ReportStatus.MISROUTED:
            updated.misroute_reason = extra.misroute_reason.strip()
        if rule.target == ReportStatus.DELETED:
            updated.status_before_delete = report.status

        updated, entry, denial = self._commit(report, updated, actor, rule.action, note=extra.note)
        if denial:
            inc("transition_denied", reason=denial.reason.value)
            return denial

        inc("status_transition", to=rule.target.value, role=actor.role.value)
        logger.info(
            f"✅ {actor.role.value} {actor.id} moved report {report_id}: "
            f"{report.status.value} → {rule.target.value} (v{updated.version}, {rule.action})"
        )

        try:
            self.dispatcher.dispatch_for_transition(updated, rule.target, actor, entry)
        except DispatchFailure:
            logger.error(
                f"❌ Report {report_id} committed at v{updated.version} (audit {entry.id}) "
                f"but notifications were dead-lettered; operator retry required",
                exc_info=True,
            )
            raise

        return TransitionResult.success(updated, audit_entry_id=entry.id)

    def add_after_photos(
        self,
        report_id: str,
        actor: Actor,
        photos: List[Any],
        expected_version: Optional[int] = None
    ) -> TransitionResult:
        """Attach after-photos without changing status. Audited, bumps the version."""
        report, denial = self._load(report_id, expected_version)
        if denial:
            return denial

        urls = normalize_photos(photos)
        decision = self.validator.validate_after_photos(report, actor, urls)
        if not decision.ok:
            return TransitionResult.denied(decision.reason, decision.message)

        updated = report.model_copy(deep=True)
        updated.photos_after = report.photos_after + urls
        updated, entry, denial = self._commit(report, updated, actor, ACTION_ADDED_AFTER_PHOTOS)
        if denial:
            return denial

        logger.info(f"✅ {actor.id} added {len(urls)} after photo(s) to report {report_id}")
        return TransitionResult.success(updated, audit_entry_id=entry.id)

    def restore_report(
        self,
        report_id: str,
        actor: Actor,
        expected_version: Optional[int] = None
    ) -> TransitionResult:
        """
        Undo a soft delete, returning the report to the status it had before.

        This is not a state-machine transition and sends no notification.
        """
        report, denial = self._load(report_id, expected_version)
        if denial:
            return denial

        decision = self.validator.validate_restore(report, actor)
        if not decision.ok:
            return TransitionResult.denied(decision.reason, decision.message)

        updated = report.model_copy(deep=True)
        updated.status = report.status_before_delete or ReportStatus.SUBMITTED
        updated.status_before_delete = None
        updated, entry, denial = self._commit(report, updated, actor, ACTION_RESTORED)
        if denial:
            return denial

        logger.info(f"✅ {actor.id} restored report {report_id} to {updated.status.value}")
        return TransitionResult.success(updated, audit_entry_id=entry.id)

    def allowed_transitions(self, report_id: str, actor: Actor) -> Optional[List[str]]:
        """Statuses actor may request for the report, or None if it does not exist."""
        report = self.store.get_report(report_id)
        if report is None:
            return None
        return self.validator.allowed_transitions(report, actor)


# Global service instance (singleton pattern)
_workflow_service = None


def get_workflow_service() -> WorkflowService:
    """
    Get or create WorkflowService singleton instance.

    Returns:
        WorkflowService: The global workflow service instance
    """
    global _workflow_service
    if _workflow_service is None:
        _workflow_service = WorkflowService()
    return _workflow_service


def reset_workflow_service():
    """Drop the singleton so the next call rebuilds it against the current store."""
    global _workflow_service
    _workflow_service = None
