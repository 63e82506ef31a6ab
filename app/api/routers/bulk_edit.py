from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps.request_identity import require_actor
from app.core.config import settings
from app.db.session import get_db
from app.schemas.bulk_edit import (
    BulkEditApplyResponse,
    BulkEditLogListResponse,
    BulkEditLogView,
    BulkEditResolveRequest,
    BulkEditSubmissionResponse,
    BulkEditSubmitRequest,
    ReadinessResponse,
)
from app.schemas.request_identity import RequestIdentity
from app.services import bulk_edit_log_service, bulk_edit_orchestrator
from app.services.bulk_edit_errors import BulkEditFailure, NotConfigured
from app.services.bulk_update_gateway import BulkUpdateGateway

router = APIRouter(prefix="/bulk-edits", tags=["bulk-edits"])


def _ensure_enabled() -> None:
    if not settings.BULK_EDIT_ENABLED:
        raise HTTPException(status_code=404, detail="Bulk edit is disabled")


def _raise_failure(exc: BulkEditFailure) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def get_gateway() -> BulkUpdateGateway:
    return BulkUpdateGateway()


@router.post(
    "",
    response_model=BulkEditSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_bulk_edit(
    payload: BulkEditSubmitRequest,
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    _ensure_enabled()
    try:
        result = bulk_edit_orchestrator.submit_bulk_edit(
            db,
            sheet_name=payload.sheet_name,
            filters=payload.filters,
            updates=payload.updates,
            affected_rows=payload.affected_rows,
            actor=actor,
        )
    except BulkEditFailure as exc:
        db.rollback()
        _raise_failure(exc)

    return BulkEditSubmissionResponse(
        log_id=result.log.id,
        status=result.log.status,
        affected_rows_count=result.log.affected_rows_count,
        notified_admins=result.notified_admins,
        message=result.message,
    )


@router.get("", response_model=BulkEditLogListResponse)
def list_bulk_edits(
    sheet_name: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    _ensure_enabled()
    del actor
    logs = bulk_edit_log_service.list_logs(db, sheet_name=sheet_name, status=status_filter)
    return BulkEditLogListResponse(logs=[BulkEditLogView.model_validate(log) for log in logs])


@router.get("/stale", response_model=BulkEditLogListResponse)
def list_stale_bulk_edits(
    older_than_hours: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    _ensure_enabled()
    del actor
    hours = settings.BULK_EDIT_PENDING_ALERT_HOURS if older_than_hours is None else older_than_hours
    logs = bulk_edit_log_service.list_stale_pending(db, older_than_hours=hours)
    return BulkEditLogListResponse(logs=[BulkEditLogView.model_validate(log) for log in logs])


@router.get("/readiness", response_model=ReadinessResponse)
def bulk_edit_readiness(gateway: BulkUpdateGateway = Depends(get_gateway)):
    _ensure_enabled()
    try:
        check = gateway.healthcheck()
    except NotConfigured as exc:
        return ReadinessResponse(configured=False, success=False, message=exc.message)
    return ReadinessResponse(configured=True, success=check.success, message=check.message)


@router.get("/{log_id}", response_model=BulkEditLogView)
def get_bulk_edit(
    log_id: str,
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    _ensure_enabled()
    del actor
    try:
        log = bulk_edit_log_service.get_log(db, log_id)
    except BulkEditFailure as exc:
        _raise_failure(exc)
    return BulkEditLogView.model_validate(log)


@router.post("/{log_id}/apply", response_model=BulkEditApplyResponse)
def apply_bulk_edit(
    log_id: str,
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
    gateway: BulkUpdateGateway = Depends(get_gateway),
):
    _ensure_enabled()
    try:
        result = bulk_edit_orchestrator.apply_log(db, log_id=log_id, actor=actor, gateway=gateway)
    except BulkEditFailure as exc:
        db.rollback()
        _raise_failure(exc)

    return BulkEditApplyResponse(
        log=BulkEditLogView.model_validate(result.log),
        success=result.success,
        updated_count=result.updated_count,
        partial=result.partial,
        message=result.message,
        error_code=result.error_code,
    )


@router.post("/{log_id}/resolve", response_model=BulkEditLogView)
def resolve_bulk_edit(
    log_id: str,
    payload: BulkEditResolveRequest,
    db: Session = Depends(get_db),
    actor: RequestIdentity = Depends(require_actor),
):
    _ensure_enabled()
    try:
        log = bulk_edit_orchestrator.resolve_log(
            db,
            log_id=log_id,
            status=payload.status,
            actor=actor,
            notes=payload.notes,
        )
    except BulkEditFailure as exc:
        db.rollback()
        _raise_failure(exc)
    return BulkEditLogView.model_validate(log)
