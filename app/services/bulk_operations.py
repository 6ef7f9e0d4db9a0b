"""
Bulk Operation Coordinator - one target status applied to many reports.

Each report goes through WorkflowService.apply_transition on its own, with no
expected-version check (last write wins). One report's failure never aborts
the batch; every distinct input id ends up in exactly one of
BulkResult.updated / BulkResult.failed, in input order.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple, Union
import logging

from app.core.errors import DispatchFailure, WorkflowError
from app.core.settings import settings
from app.models.workflow import Actor, BulkFailure, BulkResult, ReportStatus, TransitionExtra
from app.services.workflow_service import WorkflowService, get_workflow_service

logger = logging.getLogger(__name__)

# Outcome of one item: (report_id, None) when updated, (report_id, failure) otherwise
ItemOutcome = Tuple[str, Optional[BulkFailure]]


class BulkOperationCoordinator:
    """
    Applies a transition to a batch of reports and aggregates partial results.
    """

    def __init__(self, workflow: Optional[WorkflowService] = None, max_workers: Optional[int] = None):
        self.workflow = workflow or get_workflow_service()
        self.max_workers = max(max_workers or settings.BULK_MAX_WORKERS, 1)

    def _apply_one(self, report_id: str, requested_status, actor: Actor, extra: Optional[TransitionExtra]) -> ItemOutcome:
        try:
            result = self.workflow.apply_transition(report_id, requested_status, actor, expected_version=None, extra=extra)
        except DispatchFailure as e:
            # The status change is committed; only its notifications were dead-lettered
            return report_id, BulkFailure(id=report_id, reason="DispatchFailure", message=str(e))
        except WorkflowError as e:
            logger.error(f"❌ Bulk item {report_id} failed: {e}", exc_info=True)
            return report_id, BulkFailure(id=report_id, reason=type(e).__name__, message=str(e))
        except Exception as e:
            logger.error(f"❌ Bulk item {report_id} raised unexpectedly: {e}", exc_info=True)
            return report_id, BulkFailure(id=report_id, reason="InternalError", message=str(e))

        if result.ok:
            return report_id, None
        return report_id, BulkFailure(id=report_id, reason=result.reason.value, message=result.message)

    def bulk_apply(
        self,
        report_ids: List[str],
        requested_status: Union[str, ReportStatus],
        actor: Actor,
        extra: Optional[TransitionExtra] = None
    ) -> BulkResult:
        """
        Apply requested_status to every report id.

        Args:
            report_ids: Reports to transition (duplicates are processed once)
            requested_status: Target status for all of them
            actor: Acting principal
            extra: Data applied to every item (e.g. assignment)

        Returns:
            BulkResult; never raises for per-item errors
        """
        unique_ids = list(dict.fromkeys(report_ids))

        if self.max_workers > 1 and len(unique_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda rid: self._apply_one(rid, requested_status, actor, extra), unique_ids))
        else:
            outcomes = [self._apply_one(rid, requested_status, actor, extra) for rid in unique_ids]

        result = BulkResult()
        for report_id, failure in outcomes:
            if failure is None:
                result.updated.append(report_id)
            else:
                result.failed.append(failure)

        logger.info(
            f"📦 Bulk {requested_status} by {actor.id}: "
            f"{len(result.updated)} updated, {len(result.failed)} failed"
        )
        return result


def get_bulk_coordinator() -> BulkOperationCoordinator:
    return BulkOperationCoordinator(get_workflow_service())
