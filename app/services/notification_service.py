from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.flow_logging import flow_info
from app.models.notification import EDIT_NOTIFICATION_TYPE, Notification
from app.models.user_roles import ADMIN_ROLES, UserRole
from app.services.bulk_edit_errors import PersistenceError

logger = logging.getLogger(__name__)


def display_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def normalize_changes(changes: dict[str, Any] | None) -> dict[str, dict[str, str]]:
    normalized: dict[str, dict[str, str]] = {}
    for field, diff in (changes or {}).items():
        if isinstance(diff, dict):
            old, new = diff.get("old"), diff.get("new")
        else:
            old, new = None, diff
        normalized[str(field)] = {"old": display_value(old), "new": display_value(new)}
    return normalized


def describe_changes(changes: dict[str, dict[str, str]]) -> str:
    return ", ".join(
        f'{field}: "{diff["old"]}" → "{diff["new"]}"' for field, diff in changes.items()
    )


def admin_recipient_ids(db: Session) -> list[int]:
    rows = (
        db.query(UserRole.user_id)
        .filter(UserRole.role.in_(ADMIN_ROLES))
        .filter(UserRole.approved.is_(True))
        .distinct()
        .order_by(UserRole.user_id.asc())
        .all()
    )
    return [int(row.user_id) for row in rows]


def notify_admins(
    db: Session,
    *,
    editor_id: str | int | None,
    editor_name: str,
    sheet_type: str,
    record_id: str,
    changes: dict[str, Any] | None,
    description: str | None = None,
) -> int:
    """
    Create one edit notification per approved administrator.

    Failing to resolve recipients is logged and ends the fan-out quietly;
    a failed batch insert raises PersistenceError. Already committed rows
    owned by the caller (the bulk edit log) are never touched.
    """
    try:
        recipients = admin_recipient_ids(db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("edit_notification_recipients_unavailable error=%s", exc)
        return 0

    if not recipients:
        flow_info(logger, "edit_notification_no_recipients record=%s", record_id, category="bulk_edit")
        return 0

    normalized = normalize_changes(changes)
    summary = (description or "").strip() or describe_changes(normalized)
    payload = {
        "editorId": None if editor_id is None else str(editor_id),
        "editorName": editor_name or "",
        "sheetType": sheet_type,
        "recordId": record_id,
        "changes": normalized,
    }

    notifications = [
        Notification(
            id=str(uuid4()),
            user_id=user_id,
            type=EDIT_NOTIFICATION_TYPE,
            title=f"Edit of {sheet_type}",
            message=f"{editor_name} edited a record: {summary}",
            data=payload,
            read=False,
        )
        for user_id in recipients
    ]
    try:
        db.add_all(notifications)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("edit_notification_insert_failed record=%s error=%s", record_id, exc)
        raise PersistenceError(f"Failed to create notifications: {exc}") from exc

    flow_info(
        logger,
        "edit_notification_sent record=%s recipients=%s",
        record_id,
        len(notifications),
        category="bulk_edit",
    )
    return len(notifications)


def list_notifications(
    db: Session,
    *,
    user_id: int,
    unread_only: bool = False,
) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == int(user_id))
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.asc()).all()
