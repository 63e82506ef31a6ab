from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.deps.request_identity import get_request_identity
from app.api.routers.bulk_edit import get_gateway
from app.schemas.bulk_edit import ApplyBulkUpdateRequest
from app.schemas.request_identity import RequestIdentity
from app.services.bulk_edit_errors import BulkEditFailure, UpstreamError
from app.services.bulk_update_gateway import NOT_CONFIGURED_MESSAGE, BulkUpdateGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["apply-bulk-update"])

APPLY_BULK_UPDATE_PATH = "/apply-bulk-update"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-user-email",
}


def _json(body: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=body, status_code=status_code, headers=CORS_HEADERS)


def _error(message: str, status_code: int) -> JSONResponse:
    return _json({"success": False, "error": message}, status_code=status_code)


def _failure_status(exc: BulkEditFailure) -> int:
    # The script answered but unusably: caller-side 400. No answer at all: 500.
    if isinstance(exc, UpstreamError) and exc.upstream_status is not None:
        return 400
    return exc.status_code


@router.options(APPLY_BULK_UPDATE_PATH)
def apply_bulk_update_preflight():
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post(APPLY_BULK_UPDATE_PATH)
def apply_bulk_update(
    healthcheck: bool = Query(False),
    payload: dict | None = Body(None),
    identity: RequestIdentity = Depends(get_request_identity),
    gateway: BulkUpdateGateway = Depends(get_gateway),
):
    """
    Server-side proxy to the Apps Script web app.

    Callers never see the shared secret; it is attached by the gateway
    right before the outbound call.
    """
    if healthcheck:
        try:
            check = gateway.healthcheck()
        except BulkEditFailure as exc:
            return _error(exc.message, exc.status_code)
        return _json(check.to_dict())

    if not gateway.is_configured():
        return _error(NOT_CONFIGURED_MESSAGE, 400)

    if not identity.email:
        return _error("Authenticated user is required.", 401)

    try:
        request = ApplyBulkUpdateRequest.model_validate(payload or {})
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        return _error(f"Invalid request field '{field}': {first.get('msg', 'invalid value')}", 400)

    try:
        outcome = gateway.apply(
            request.sheetName,
            request.dateFilter,
            request.filters,
            request.updates,
        )
    except BulkEditFailure as exc:
        return _error(exc.message, _failure_status(exc))
    except Exception as exc:
        logger.exception("apply_bulk_update_unexpected_error sheet=%s", request.sheetName)
        return _error(str(exc) or "Unknown error", 500)

    logger.info(
        "apply_bulk_update_proxied sheet=%s updated=%s by=%s",
        request.sheetName,
        outcome.updated_count,
        identity.email,
    )
    return _json(
        {
            "success": True,
            "updatedCount": outcome.updated_count,
            "message": outcome.message,
        }
    )
