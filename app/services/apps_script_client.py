from __future__ import annotations

from typing import Any

import requests

HEALTHCHECK_ACTION = "healthcheck"


def _normalize_update_payload(payload: dict[str, Any]) -> dict[str, Any]:
    sheet_name = str(payload.get("sheetName") or "").strip()
    if not sheet_name:
        raise ValueError("Bulk update payload missing required field 'sheetName'.")

    updates = payload.get("updates")
    if not isinstance(updates, dict) or not updates:
        raise ValueError("Bulk update payload field 'updates' must be a non-empty object.")

    raw_filters = payload.get("filters")
    if raw_filters is None:
        filters: dict[str, Any] = {}
    elif isinstance(raw_filters, dict):
        filters = raw_filters
    else:
        raise ValueError("Bulk update payload field 'filters' must be an object.")

    date_filter = str(payload.get("dateFilter") or "").strip()
    return {
        "sheetName": sheet_name,
        "dateFilter": date_filter or None,
        "filters": filters,
        "updates": updates,
    }


def _post(
    script_url: str,
    body: dict[str, Any],
    *,
    timeout_seconds: float,
) -> requests.Response:
    response = requests.post(
        script_url,
        json=body,
        headers={"Content-Type": "application/json"},
        timeout=timeout_seconds,
    )
    response.raise_for_status()
    return response


def post_bulk_update(
    payload: dict[str, Any],
    *,
    script_url: str,
    secret: str,
    timeout_seconds: float = 30,
) -> requests.Response:
    body = {"authToken": secret, **_normalize_update_payload(payload)}
    return _post(script_url, body, timeout_seconds=timeout_seconds)


def post_healthcheck(
    *,
    script_url: str,
    secret: str,
    timeout_seconds: float = 10,
) -> requests.Response:
    body = {"authToken": secret, "action": HEALTHCHECK_ACTION}
    return _post(script_url, body, timeout_seconds=timeout_seconds)
