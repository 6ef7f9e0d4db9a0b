"""
Pydantic models for the report lifecycle workflow.

These models describe reports, audit entries, notifications and the result
types returned by workflow operations. They carry no business rules; the
transition rules live in app.services.status_workflow.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportStatus(str, Enum):
    """
    Report lifecycle states.

    submitted → assigned → in_progress → awaiting_verification → verified → closed
    with misrouted as a detour back to assigned, and deleted as a soft delete.
    """
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"
    MISROUTED = "misrouted"
    CLOSED = "closed"
    DELETED = "deleted"


TERMINAL_STATUSES = frozenset({ReportStatus.CLOSED, ReportStatus.DELETED})


class Role(str, Enum):
    REPORTER = "reporter"
    OFFICER = "officer"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPERADMIN})


class DenyReason(str, Enum):
    """Enumerated reasons a workflow operation can be refused."""
    INVALID_TRANSITION = "InvalidTransition"
    UNAUTHORIZED = "Unauthorized"
    PRECONDITION_FAILED = "PreconditionFailed"
    VERSION_CONFLICT = "VersionConflict"
    NOT_FOUND = "NotFound"


class Actor(BaseModel):
    """The authenticated principal performing an operation (supplied by the identity provider)."""
    id: str = Field(..., min_length=1, description="User id from the identity provider")
    role: Role = Field(..., description="Role of the acting user")
    name: Optional[str] = Field(None, description="Display name, used in notification payloads")


class PhotoUpload(BaseModel):
    """Object-storage upload result for one photo."""
    url: str = Field(..., min_length=1)
    thumbnail_url: Optional[str] = None
    file_id: Optional[str] = None


PhotoInput = Union[str, PhotoUpload]


def normalize_photos(photos: Optional[List[Any]]) -> List[str]:
    """
    Normalize a list of photo URLs / upload results to plain URL strings.

    Blank entries are dropped; order is preserved.
    """
    if not photos:
        return []
    if not isinstance(photos, list):
        photos = [photos]

    urls = []
    for photo in photos:
        if isinstance(photo, PhotoUpload):
            url = photo.url
        elif isinstance(photo, dict):
            url = photo.get("url")
        else:
            url = photo
        if isinstance(url, str) and url.strip():
            urls.append(url.strip())
    return urls


class Report(BaseModel):
    """Canonical report document as held by the report store."""
    id: str
    title: str
    description: str
    status: ReportStatus = ReportStatus.SUBMITTED
    reporter_id: str
    category_id: Optional[str] = None
    department_id: Optional[str] = None
    assigned_officer_ids: List[str] = Field(default_factory=list)
    photos_before: List[str] = Field(default_factory=list)
    photos_after: List[str] = Field(default_factory=list)
    misroute_reason: Optional[str] = None
    status_before_delete: Optional[ReportStatus] = None
    classification: Optional[Dict[str, Any]] = Field(default=None, description="Classifier output captured at creation (advisory)")
    version: int = Field(default=1, ge=1, description="Optimistic concurrency token")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_assigned_to(self, user_id: str) -> bool:
        return user_id in self.assigned_officer_ids


class ReportCreate(BaseModel):
    """Incoming payload for a new report."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category_id: Optional[str] = None
    department_id: Optional[str] = None
    photos_before: List[PhotoInput] = Field(default_factory=list)

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class TransitionExtra(BaseModel):
    """Optional data supplied alongside a transition request."""
    assigned_officer_ids: Optional[List[str]] = Field(None, description="Replaces the current assignment")
    photos_after: Optional[List[PhotoInput]] = Field(None, description="Appended to the report's after-photos")
    misroute_reason: Optional[str] = Field(None, max_length=500)
    note: Optional[str] = Field(None, max_length=500, description="Free text recorded in the audit entry")


class AuditEntry(BaseModel):
    """Immutable fact about one accepted mutation."""
    id: str
    report_id: str
    actor_id: str
    actor_role: Role
    action: str
    diff: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    note: Optional[str] = None
    sequence: int = 0
    created_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


class AuditPage(BaseModel):
    items: List[AuditEntry]
    page: int
    limit: int
    total: int
    total_pages: int


class Notification(BaseModel):
    """Delivery record for one recipient about one event."""
    id: str
    recipient_id: str
    type: str
    report_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    audit_entry_id: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class DeadLetter(BaseModel):
    """A notification that could not be created after all attempts."""
    id: str
    type: str
    recipient_id: str
    report_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    audit_entry_id: Optional[str] = None
    error: str
    attempts: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None


class TransitionResult(BaseModel):
    """Outcome of a single workflow operation: the updated report or a typed denial."""
    ok: bool
    report: Optional[Report] = None
    reason: Optional[DenyReason] = None
    message: Optional[str] = None
    audit_entry_id: Optional[str] = None

    @classmethod
    def success(cls, report: Report, audit_entry_id: Optional[str] = None) -> "TransitionResult":
        return cls(ok=True, report=report, audit_entry_id=audit_entry_id)

    @classmethod
    def denied(cls, reason: DenyReason, message: str) -> "TransitionResult":
        return cls(ok=False, reason=reason, message=message)


class BulkFailure(BaseModel):
    id: str
    reason: str
    message: Optional[str] = None


class BulkResult(BaseModel):
    """Per-item outcome of a bulk transition. Not persisted."""
    updated: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)
