from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps.request_identity import require_actor
from app.db.session import get_db
from app.schemas.notifications import NotificationListResponse, NotificationView
from app.schemas.request_identity import RequestIdentity
from app.services.notification_service import list_notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def list_my_notifications(
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    if actor.user_id is None:
        return NotificationListResponse(notifications=[])
    rows = list_notifications(db, user_id=actor.user_id, unread_only=unread_only)
    return NotificationListResponse(
        notifications=[NotificationView.model_validate(row) for row in rows]
    )
