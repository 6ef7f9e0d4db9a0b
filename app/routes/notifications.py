"""
Notification endpoints - the caller's own notifications and read state.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.models.workflow import Actor
from app.services.notification_dispatcher import NotificationDispatcher
from app.utils.security import get_actor

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class MarkReadRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class MarkAllReadRequest(BaseModel):
    before: Optional[datetime] = Field(None, description="Only notifications created at or before this time")


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=100),
    actor: Actor = Depends(get_actor),
):
    """Latest notifications for the caller, newest first, with display text."""
    dispatcher = NotificationDispatcher()
    items = dispatcher.list_for_recipient(actor.id, unread_only=unread_only, limit=limit)
    return {
        "success": True,
        "items": [{**item.model_dump(mode="json"), "message": dispatcher.format(item)} for item in items],
    }


@router.get("/unread-count")
async def unread_count(actor: Actor = Depends(get_actor)):
    return {"success": True, "unread": NotificationDispatcher().unread_count(actor.id)}


@router.post("/read")
async def mark_read(request: MarkReadRequest, actor: Actor = Depends(get_actor)):
    """Mark the given notifications read; ids belonging to other users are ignored."""
    updated = NotificationDispatcher().mark_read(request.ids, recipient_id=actor.id)
    return {"success": True, "updated": updated}


@router.post("/read-all")
async def mark_all_read(request: Optional[MarkAllReadRequest] = None, actor: Actor = Depends(get_actor)):
    before = request.before if request else None
    updated = NotificationDispatcher().mark_all_read(actor.id, before=before)
    return {"success": True, "updated": updated}
