"""
Report Service - intake and read access for reports.

DESIGN PRINCIPLES:
- New reports always start in `submitted` at version 1 with a `created` audit entry
- The classifier only suggests; a category is set automatically only above
  CLASSIFIER_MIN_CONFIDENCE, and a classifier failure never blocks intake
- Soft-deleted reports stay out of listings unless an admin explicitly asks
"""

from typing import Dict, List, Optional
import logging
import math
import uuid

from app.core.settings import settings
from app.models.workflow import ADMIN_ROLES, Actor, Report, ReportCreate, ReportStatus, Role, normalize_photos, utc_now
from app.services.audit_recorder import AuditRecorder, build_diff
from app.services.classifier import classify_with_fallback
from app.services.report_store import ReportStore, UnitOfWork, get_report_store

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"

LISTED_STATUSES = [status for status in ReportStatus if status != ReportStatus.DELETED]


def can_view_report(actor: Actor, report: Report) -> bool:
    """Admins and officers see every report; reporters only their own."""
    if actor.role == Role.REPORTER:
        return report.reporter_id == actor.id
    return True


def may_list_deleted(actor: Actor) -> bool:
    return settings.LIST_DELETED_FOR_ADMINS and actor.role in ADMIN_ROLES


class ReportService:
    """
    Service for creating and reading reports.
    """

    def __init__(self, store: Optional[ReportStore] = None, audit: Optional[AuditRecorder] = None, classifier=None):
        self.store = store or get_report_store()
        self.audit = audit or AuditRecorder(self.store)
        self.classify = classifier or classify_with_fallback

    def create_report(self, actor: Actor, payload: ReportCreate, categories: Optional[List[Dict]] = None) -> Report:
        """
        Create a new report owned by actor.

        Args:
            actor: The reporting user (becomes reporter_id, immutable)
            payload: Validated report content
            categories: Candidate categories for the classifier

        Returns:
            The stored report

        Raises:
            StorageFailure: report or audit entry could not be written
        """
        category_id = payload.category_id
        classification = None
        if not category_id:
            result = self.classify(payload.description, categories)
            classification = result.to_dict()
            if result.category_id and result.confidence >= settings.CLASSIFIER_MIN_CONFIDENCE:
                category_id = result.category_id
                logger.info(f"🏷️ Classifier assigned category {category_id} ({result.confidence:.2f})")
            else:
                logger.info(f"Classifier suggestion below threshold or empty: {result.category_id} ({result.confidence:.2f})")

        now = utc_now()
        report = Report(
            id=uuid.uuid4().hex,
            title=payload.title,
            description=payload.description,
            status=ReportStatus.SUBMITTED,
            reporter_id=actor.id,
            category_id=category_id,
            department_id=payload.department_id,
            photos_before=normalize_photos(payload.photos_before),
            classification=classification,
            version=1,
            created_at=now,
            updated_at=now,
        )

        entry = self.audit.new_entry(
            report_id=report.id,
            actor=actor,
            action=ACTION_CREATED,
            diff=build_diff(
                {},
                {"status": report.status, "category_id": report.category_id, "photos_before": report.photos_before},
            ),
        )
        uow = UnitOfWork()
        uow.put_report(report, expected_version=None)
        self.audit.append(entry, uow)
        self.store.commit(uow)

        logger.info(f"✅ Report created: {report.id} by {actor.id}")
        return report

    def get_report(self, report_id: str, actor: Actor) -> Optional[Report]:
        """The report if it exists and actor may see it, else None."""
        report = self.store.get_report(report_id)
        if report is None or not can_view_report(actor, report):
            return None
        return report

    def list_reports(
        self,
        actor: Actor,
        status: Optional[ReportStatus] = None,
        reporter_id: Optional[str] = None,
        assigned_officer_id: Optional[str] = None,
        include_deleted: bool = False,
        page: int = 1,
        limit: int = 10
    ) -> Dict:
        """
        Paginated reports, newest first.

        Reporters only ever see their own reports. Deleted reports are listed
        only for admins who pass include_deleted (or filter on status=deleted).
        """
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        if actor.role == Role.REPORTER:
            reporter_id = actor.id

        show_deleted = may_list_deleted(actor) and (include_deleted or status == ReportStatus.DELETED)
        if status is not None:
            if status == ReportStatus.DELETED and not show_deleted:
                return self._page([], 0, page, limit)
            statuses = [status]
        else:
            statuses = None if show_deleted else LISTED_STATUSES

        items, total = self.store.list_reports(
            statuses=statuses,
            reporter_id=reporter_id,
            assigned_officer_id=assigned_officer_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return self._page(items, total, page, limit)

    def _page(self, items: List[Report], total: int, page: int, limit: int) -> Dict:
        return {
            "items": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": max(math.ceil(total / limit), 1),
            },
        }

    def suggest_category(self, text: str, categories: Optional[List[Dict]] = None) -> Dict:
        """Classifier suggestion without creating anything."""
        return self.classify(text, categories).to_dict()


# Global service instance (singleton pattern)
_report_service = None


def get_report_service() -> ReportService:
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service


def reset_report_service():
    global _report_service
    _report_service = None
