"""
Admin endpoints - operator controls for the workflow engine.

SCOPE OF ADMIN:
✅ Inspect and retry dead-lettered notifications
✅ Read the transition table and notification registry (for UI mirrors)
✅ Read in-process transition counters

❌ NOT change report status directly (use /reports/{id}/transitions)
❌ NOT edit or delete audit entries
"""

from fastapi import APIRouter, Depends, Query

from app.core.observability import snapshot_counters
from app.models.workflow import Actor
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.notification_types import NOTIFICATION_TYPES, REGISTRY_VERSION, TRANSITION_NOTIFICATIONS
from app.services.workflow_service import get_workflow_service
from app.utils.security import require_admin

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/notifications/dead-letters")
async def list_dead_letters(
    include_resolved: bool = Query(False),
    actor: Actor = Depends(require_admin),
):
    items = NotificationDispatcher().list_dead_letters(include_resolved=include_resolved)
    return {"success": True, "items": items}


@router.post("/notifications/dead-letters/retry")
async def retry_dead_letters(actor: Actor = Depends(require_admin)):
    """
    Retry every unresolved dead letter once.

    Safe to call repeatedly: notification ids are idempotent.
    """
    return {"success": True, "result": NotificationDispatcher().retry_dead_letters()}


@router.get("/workflow/transitions")
async def transition_table(actor: Actor = Depends(require_admin)):
    """The transition table as data, for display layers that mirror it."""
    validator = get_workflow_service().validator
    rules = [
        {
            "from": rule.source.value,
            "to": rule.target.value,
            "roles": sorted(role.value for role in rule.roles),
            "assigned_officer": rule.assigned_officer,
            "action": rule.action,
        }
        for rule in sorted(validator.table.values(), key=lambda r: (r.source.value, r.target.value))
    ]
    return {"success": True, "transitions": rules}


@router.get("/notifications/types")
async def notification_types(actor: Actor = Depends(require_admin)):
    return {
        "success": True,
        "version": REGISTRY_VERSION,
        "types": sorted(NOTIFICATION_TYPES),
        "transitions": {status.value: notice.type for status, notice in TRANSITION_NOTIFICATIONS.items()},
    }


@router.get("/metrics")
async def metrics(actor: Actor = Depends(require_admin)):
    """Transition and dead-letter counters since process start."""
    return {"success": True, "counters": snapshot_counters()}
