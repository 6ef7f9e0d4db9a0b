"""
Report endpoints - intake, reads and lifecycle transitions.

Workflow denials come back from the services as values and are mapped to
HTTP status codes here; routes never re-implement transition rules.
"""

from typing import Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.core.settings import settings
from app.models.workflow import (
    Actor,
    DenyReason,
    PhotoInput,
    ReportCreate,
    ReportStatus,
    TransitionExtra,
    TransitionResult,
)
from app.services.bulk_operations import get_bulk_coordinator
from app.services.report_service import get_report_service
from app.services.workflow_service import get_workflow_service
from app.utils.security import get_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


DENIAL_STATUS_CODES: Dict[DenyReason, int] = {
    DenyReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    DenyReason.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    DenyReason.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    DenyReason.VERSION_CONFLICT: status.HTTP_409_CONFLICT,
    DenyReason.PRECONDITION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def unwrap(result: TransitionResult, message: str) -> Dict:
    """Success payload for an accepted operation, or HTTPException for a denial."""
    if not result.ok:
        raise HTTPException(
            status_code=DENIAL_STATUS_CODES[result.reason],
            detail={"reason": result.reason.value, "message": result.message},
        )
    return {
        "success": True,
        "message": message,
        "report": result.report,
        "audit_entry_id": result.audit_entry_id,
    }


# Request models
class CategorySuggestionRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=5000)
    categories: Optional[List[Dict]] = Field(None, description="Candidate categories [{id, name}]")


class TransitionRequest(BaseModel):
    """Request to move a report to another status."""
    status: ReportStatus = Field(..., description="Target status")
    expected_version: Optional[int] = Field(None, ge=1, description="Version the caller last saw")
    extra: Optional[TransitionExtra] = None


class BulkTransitionRequest(BaseModel):
    """Request to move many reports to one status (last write wins per report)."""
    ids: List[str] = Field(..., min_length=1)
    status: ReportStatus
    extra: Optional[TransitionExtra] = None


class AfterPhotosRequest(BaseModel):
    photos: List[PhotoInput] = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)


class RestoreRequest(BaseModel):
    expected_version: Optional[int] = Field(None, ge=1)


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_report(payload: ReportCreate, actor: Actor = Depends(get_actor)):
    """
    Submit a new report.

    The report starts in `submitted`. Without a category the classifier is
    consulted; its suggestion is applied only above the confidence threshold.
    """
    logger.info(f"📝 POST /reports by {actor.id}")
    report = get_report_service().create_report(actor, payload)
    return {"success": True, "message": "Report created", "report": report}


@router.get("")
async def list_reports(
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    reporter_id: Optional[str] = Query(None),
    assigned_officer_id: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
):
    return get_report_service().list_reports(
        actor,
        status=status_filter,
        reporter_id=reporter_id,
        assigned_officer_id=assigned_officer_id,
        include_deleted=include_deleted,
        page=page,
        limit=limit,
    )


@router.post("/categorize")
async def suggest_category(request: CategorySuggestionRequest, actor: Actor = Depends(get_actor)):
    """Classifier suggestion only; nothing is stored."""
    return {"success": True, "classification": get_report_service().suggest_category(request.description, request.categories)}


@router.post("/bulk-transitions")
async def bulk_transition(request: BulkTransitionRequest, actor: Actor = Depends(get_actor)):
    """
    Apply one status to many reports.

    Always 200: each id is reported in `updated` or `failed`.
    """
    if len(request.ids) > settings.MAX_BULK_IDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.MAX_BULK_IDS} ids per bulk request"
        )
    result = get_bulk_coordinator().bulk_apply(request.ids, request.status, actor, extra=request.extra)
    return {"success": True, "result": result}


@router.get("/{report_id}")
async def get_report(report_id: str, actor: Actor = Depends(get_actor)):
    report = get_report_service().get_report(report_id, actor)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {report_id} not found")
    return {"success": True, "report": report}


@router.get("/{report_id}/allowed-transitions")
async def allowed_transitions(report_id: str, actor: Actor = Depends(get_actor)):
    """Statuses the caller may request next; UIs render only these."""
    allowed = get_workflow_service().allowed_transitions(report_id, actor)
    if allowed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {report_id} not found")
    return {"success": True, "report_id": report_id, "allowed": allowed}


@router.post("/{report_id}/transitions")
async def transition_report(report_id: str, request: TransitionRequest, actor: Actor = Depends(get_actor)):
    """
    Move a report to another status.

    Errors:
        404 NotFound, 403 Unauthorized, 409 InvalidTransition / VersionConflict,
        422 PreconditionFailed, 502 DispatchFailure (committed), 503 StorageFailure
    """
    result = get_workflow_service().apply_transition(
        report_id,
        request.status,
        actor,
        expected_version=request.expected_version,
        extra=request.extra,
    )
    return unwrap(result, f"Report moved to {request.status.value}")


@router.post("/{report_id}/after-photos")
async def add_after_photos(report_id: str, request: AfterPhotosRequest, actor: Actor = Depends(get_actor)):
    result = get_workflow_service().add_after_photos(
        report_id, actor, request.photos, expected_version=request.expected_version
    )
    return unwrap(result, "After photos added")


@router.post("/{report_id}/restore")
async def restore_report(report_id: str, request: Optional[RestoreRequest] = None, actor: Actor = Depends(get_actor)):
    expected_version = request.expected_version if request else None
    result = get_workflow_service().restore_report(report_id, actor, expected_version=expected_version)
    return unwrap(result, "Report restored")
