from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.flow_logging import flow_info
from app.models.bulk_edit_log import STATUS_APPLIED, STATUS_FAILED, BulkEditLog
from app.schemas.request_identity import RequestIdentity
from app.services import bulk_edit_log_service, notification_service
from app.services.bulk_edit_errors import GatewayError
from app.services.bulk_update_gateway import BulkUpdateGateway

logger = logging.getLogger(__name__)


@dataclass
class BulkEditSubmissionResult:
    log: BulkEditLog
    notified_admins: int
    message: str


@dataclass
class BulkEditApplyResult:
    log: BulkEditLog
    success: bool
    message: str
    updated_count: int | None = None
    partial: bool = False
    error_code: str | None = None


def _changes_for(
    updates: dict[str, Any],
    affected_rows: list[dict[str, Any]],
) -> dict[str, dict[str, Any]]:
    representative = affected_rows[0] if affected_rows and isinstance(affected_rows[0], dict) else {}
    return {
        field: {"old": representative.get(field, ""), "new": new_value}
        for field, new_value in (updates or {}).items()
    }


def submit_bulk_edit(
    db: Session,
    *,
    sheet_name: str,
    filters: dict[str, Any] | None,
    updates: dict[str, Any] | None,
    affected_rows: list[dict[str, Any]] | None,
    actor: RequestIdentity,
) -> BulkEditSubmissionResult:
    """
    Log a bulk edit and tell the administrators about it.

    The spreadsheet is not touched here; the log stays pending until
    `apply_log` runs.
    """
    rows = list(affected_rows or [])
    log = bulk_edit_log_service.create_log(
        db,
        sheet_name=sheet_name,
        filters=filters,
        updates=updates,
        affected_rows=rows,
        actor_id=actor.actor_id,
    )

    notified = 0
    try:
        notified = notification_service.notify_admins(
            db,
            editor_id=actor.user_id if actor.user_id is not None else actor.actor_id,
            editor_name=actor.editor_name,
            sheet_type=log.sheet_name,
            record_id=log.id,
            changes=_changes_for(log.updates, rows),
        )
    except Exception:
        # Notification is best-effort; the log is already committed.
        logger.exception("bulk_edit_notify_failed id=%s", log.id)
        db.rollback()

    message = f"{log.affected_rows_count} row(s) marked for change; pending application."
    flow_info(
        logger,
        "bulk_edit_submitted id=%s sheet=%s rows=%s notified=%s",
        log.id,
        log.sheet_name,
        log.affected_rows_count,
        notified,
        category="bulk_edit",
    )
    return BulkEditSubmissionResult(log=log, notified_admins=notified, message=message)


def apply_log(
    db: Session,
    *,
    log_id: str,
    actor: RequestIdentity,
    gateway: BulkUpdateGateway | None = None,
) -> BulkEditApplyResult:
    """
    Push a pending log to the spreadsheet and record the outcome.

    The log row stays locked from the status check until the outcome is
    committed, so a log is applied at most once. Gateway failures end up
    as a failed log and an unsuccessful result, never as an exception.
    """
    gateway = gateway or BulkUpdateGateway()
    log = bulk_edit_log_service.get_log(db, log_id, for_update=True)
    bulk_edit_log_service.ensure_pending(log)

    try:
        outcome = gateway.apply(log.sheet_name, log.date_filter, log.filters, log.updates)
    except GatewayError as exc:
        log = bulk_edit_log_service.transition_status(
            db,
            log,
            status=STATUS_FAILED,
            actor_id=actor.actor_id,
            notes=exc.message,
        )
        return BulkEditApplyResult(
            log=log,
            success=False,
            message=exc.message,
            error_code=exc.code,
        )

    partial = outcome.updated_count < log.affected_rows_count
    notes = outcome.message
    if partial:
        notes = (
            f"{outcome.message} (updated {outcome.updated_count} of "
            f"{log.affected_rows_count} expected rows)"
        ).strip()
        logger.warning(
            "bulk_edit_partial_apply id=%s updated=%s expected=%s",
            log.id,
            outcome.updated_count,
            log.affected_rows_count,
        )
    log = bulk_edit_log_service.transition_status(
        db,
        log,
        status=STATUS_APPLIED,
        actor_id=actor.actor_id,
        notes=notes,
        updated_count=outcome.updated_count,
    )
    return BulkEditApplyResult(
        log=log,
        success=True,
        message=outcome.message or f"{outcome.updated_count} row(s) updated.",
        updated_count=outcome.updated_count,
        partial=partial,
    )


def resolve_log(
    db: Session,
    *,
    log_id: str,
    status: str,
    actor: RequestIdentity,
    notes: str | None = None,
) -> BulkEditLog:
    log = bulk_edit_log_service.get_log(db, log_id, for_update=True)
    default_note = (
        "Marked as applied manually" if status == STATUS_APPLIED else "Rejected by administrator"
    )
    return bulk_edit_log_service.transition_status(
        db,
        log,
        status=status,
        actor_id=actor.actor_id,
        notes=notes or default_note,
    )
