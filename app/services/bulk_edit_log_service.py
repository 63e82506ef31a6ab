from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.flow_logging import flow_info
from app.models.bulk_edit_log import (
    STATUS_PENDING,
    TERMINAL_STATUSES,
    BulkEditLog,
)
from app.services.bulk_edit_errors import (
    InvalidStatusTransition,
    LogNotFound,
    PersistenceError,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

DATE_FILTER_KEY = "Data"
SAMPLE_SIZE = 5


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _serialize_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    return str(value)


def split_date_filter(filters: dict[str, Any] | None) -> tuple[str | None, dict[str, str]]:
    """Pull the "Data" component out of the predicate.

    Returns (date_filter, remaining_filters). The remaining map never carries
    the date key, even when its value is empty.
    """
    remaining: dict[str, str] = {}
    date_filter: str | None = None
    for key, value in (filters or {}).items():
        if key == DATE_FILTER_KEY:
            text = "" if value is None else str(value).strip()
            date_filter = text or None
            continue
        remaining[str(key)] = "" if value is None else str(value)
    return date_filter, remaining


def create_log(
    db: Session,
    *,
    sheet_name: str,
    filters: dict[str, Any] | None,
    updates: dict[str, Any] | None,
    affected_rows: list[dict[str, Any]] | None,
    actor_id: str | None,
) -> BulkEditLog:
    actor = (actor_id or "").strip()
    if not actor:
        raise Unauthenticated("Authenticated user is required to log a bulk edit.")

    rows = list(affected_rows or [])
    date_filter, remaining_filters = split_date_filter(filters)
    now = _utcnow()
    log = BulkEditLog(
        id=str(uuid4()),
        sheet_name=(sheet_name or "").strip(),
        date_filter=date_filter,
        filters=remaining_filters,
        updates={str(k): "" if v is None else str(v) for k, v in (updates or {}).items()},
        affected_rows_count=len(rows),
        affected_rows_sample=[_serialize_value(row) for row in rows[:SAMPLE_SIZE]],
        status=STATUS_PENDING,
        created_by=actor,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(log)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("bulk_edit_log_insert_failed sheet=%s error=%s", log.sheet_name, exc)
        raise PersistenceError(f"Failed to record bulk edit: {exc}") from exc

    db.refresh(log)
    flow_info(
        logger,
        "bulk_edit_logged id=%s sheet=%s rows=%s filters=%s updates=%s",
        log.id,
        log.sheet_name,
        log.affected_rows_count,
        len(log.filters),
        len(log.updates),
        category="bulk_edit",
    )
    return log


def get_log(db: Session, log_id: str, *, for_update: bool = False) -> BulkEditLog:
    query = db.query(BulkEditLog).filter(BulkEditLog.id == (log_id or "").strip())
    if for_update:
        query = query.with_for_update()
    log = query.first()
    if log is None:
        raise LogNotFound(f"Bulk edit log '{log_id}' not found.")
    return log


def list_logs(
    db: Session,
    *,
    sheet_name: str | None = None,
    status: str | None = None,
) -> list[BulkEditLog]:
    query = db.query(BulkEditLog)
    if sheet_name:
        query = query.filter(BulkEditLog.sheet_name == sheet_name)
    if status:
        query = query.filter(BulkEditLog.status == status)
    return query.order_by(BulkEditLog.created_at.desc(), BulkEditLog.id.desc()).all()


def list_stale_pending(db: Session, *, older_than_hours: int) -> list[BulkEditLog]:
    cutoff = _utcnow() - timedelta(hours=max(0, int(older_than_hours)))
    rows = (
        db.query(BulkEditLog)
        .filter(BulkEditLog.status == STATUS_PENDING)
        .filter(BulkEditLog.created_at <= cutoff)
        .order_by(BulkEditLog.created_at.asc())
        .all()
    )
    if rows:
        logger.warning(
            "bulk_edit_pending_stale count=%s older_than_hours=%s",
            len(rows),
            older_than_hours,
        )
    return rows


def ensure_pending(log: BulkEditLog) -> None:
    if log.status != STATUS_PENDING:
        raise InvalidStatusTransition(
            f"Bulk edit log '{log.id}' is already {log.status}; only pending logs can change."
        )


def transition_status(
    db: Session,
    log: BulkEditLog,
    *,
    status: str,
    actor_id: str | None,
    notes: str | None = None,
    updated_count: int | None = None,
) -> BulkEditLog:
    """Move a pending log to applied/failed and commit.

    The caller is expected to hold the row (see `get_log(for_update=True)`).
    """
    target = (status or "").strip().lower()
    if target not in TERMINAL_STATUSES:
        raise InvalidStatusTransition(f"Unsupported target status '{status}'.")
    ensure_pending(log)

    now = _utcnow()
    log.status = target
    log.applied_at = now
    log.applied_by = (actor_id or "").strip() or None
    log.notes = (notes or "").strip() or None
    log.updated_at = now
    if updated_count is not None:
        log.updated_count = int(updated_count)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to update bulk edit status: {exc}") from exc

    db.refresh(log)
    flow_info(
        logger,
        "bulk_edit_status_changed id=%s status=%s by=%s",
        log.id,
        log.status,
        log.applied_by or "-",
        category="bulk_edit",
    )
    return log
