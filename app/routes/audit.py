"""
Audit log endpoints - read-only access to the append-only audit trail.

No create, update or delete routes: entries are written only
by the workflow services as part of a mutation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.models.workflow import Actor
from app.services.audit_recorder import AuditRecorder
from app.utils.security import require_admin

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("")
async def query_audit(
    report_id: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    actor: Actor = Depends(require_admin),
):
    """Audit entries newest first. limit is clamped to AUDIT_MAX_PAGE_SIZE."""
    result = AuditRecorder().query(report_id=report_id, actor_id=actor_id, action=action, page=page, limit=limit)
    return {
        "success": True,
        "items": result.items,
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "total_pages": result.total_pages,
        },
    }


@router.get("/{entry_id}")
async def get_audit_entry(entry_id: str, actor: Actor = Depends(require_admin)):
    entry = AuditRecorder().get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return {"success": True, "entry": entry}
