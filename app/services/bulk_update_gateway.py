from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from app.core.config import settings
from app.core.flow_logging import flow_info
from app.services import apps_script_client
from app.services.bulk_edit_errors import (
    ApplicationError,
    InvalidBulkUpdate,
    NotConfigured,
    PreflightFailed,
    UpstreamError,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Google Apps Script is not configured. Set APPS_SCRIPT_URL and APPS_SCRIPT_SECRET."
)
_BODY_EXCERPT = 200


@dataclass
class BulkUpdateResult:
    updated_count: int
    message: str


@dataclass
class HealthCheckResult:
    success: bool
    message: str

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


def _excerpt(text: str | None) -> str:
    return (text or "").strip()[:_BODY_EXCERPT]


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:20].lower()
    return head.startswith("<!") or head.startswith("<html")


def _as_count(raw: Any) -> int:
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return 0


class BulkUpdateGateway:
    """
    Drives a bulk edit against the Apps Script web app.

    The shared secret is attached to the outbound body here and nowhere else.
    Nothing is retried: the script is not idempotent per call.
    """

    def __init__(
        self,
        *,
        script_url: str | None = None,
        secret: str | None = None,
        timeout_seconds: float | None = None,
        preflight: bool | None = None,
    ):
        self._script_url = (
            settings.APPS_SCRIPT_URL if script_url is None else script_url
        ).strip()
        self._secret = (settings.APPS_SCRIPT_SECRET if secret is None else secret).strip()
        self._timeout_seconds = float(
            settings.APPS_SCRIPT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._preflight = (
            settings.APPS_SCRIPT_PREFLIGHT_ENABLED if preflight is None else bool(preflight)
        )

    def is_configured(self) -> bool:
        return bool(self._script_url and self._secret)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise NotConfigured(NOT_CONFIGURED_MESSAGE)

    def healthcheck(self) -> HealthCheckResult:
        self._require_configured()
        flow_info(logger, "apps_script_healthcheck_started", category="bulk_edit")
        try:
            response = apps_script_client.post_healthcheck(
                script_url=self._script_url,
                secret=self._secret,
                timeout_seconds=min(self._timeout_seconds, 10.0),
            )
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            return HealthCheckResult(False, f"Apps Script answered HTTP {status}.")
        except requests.RequestException as exc:
            return HealthCheckResult(False, f"Connection error: {exc}")

        text = response.text or ""
        if _looks_like_html(text):
            return HealthCheckResult(
                False,
                "Apps Script returned an HTML page. Check that the script is deployed as a Web App.",
            )
        try:
            json.loads(text)
        except ValueError:
            return HealthCheckResult(False, f"Invalid Apps Script response: {_excerpt(text)[:100]}")
        return HealthCheckResult(True, "Apps Script is responding correctly.")

    def apply(
        self,
        sheet_name: str,
        date_filter: str | None,
        filters: dict[str, str] | None,
        updates: dict[str, str] | None,
    ) -> BulkUpdateResult:
        self._require_configured()
        payload = {
            "sheetName": sheet_name,
            "dateFilter": date_filter,
            "filters": dict(filters or {}),
            "updates": dict(updates or {}),
        }

        if self._preflight:
            check = self.healthcheck()
            if not check.success:
                raise PreflightFailed(check.message)

        flow_info(
            logger,
            "apps_script_bulk_update_started sheet=%s date_filter=%s filters=%s updates=%s",
            sheet_name,
            date_filter or "-",
            len(payload["filters"]),
            len(payload["updates"]),
            category="bulk_edit",
        )
        try:
            response = apps_script_client.post_bulk_update(
                payload,
                script_url=self._script_url,
                secret=self._secret,
                timeout_seconds=self._timeout_seconds,
            )
        except ValueError as exc:
            raise InvalidBulkUpdate(str(exc)) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            body = _excerpt(exc.response.text if exc.response is not None else "")
            logger.warning("apps_script_bulk_update_http_error sheet=%s status=%s", sheet_name, status)
            raise UpstreamError(
                f"Apps Script request failed with HTTP {status}: {body or 'no body'}",
                upstream_status=status,
                upstream_body=body,
            ) from exc
        except requests.RequestException as exc:
            logger.warning("apps_script_bulk_update_unreachable sheet=%s error=%s", sheet_name, exc)
            raise UpstreamError(f"Apps Script request failed: {exc}") from exc

        try:
            result = response.json()
        except ValueError as exc:
            logger.warning(
                "apps_script_bulk_update_invalid_json sheet=%s body=%s",
                sheet_name,
                _excerpt(response.text),
            )
            raise UpstreamError(
                "Apps Script returned an invalid response. Check the script deployment.",
                upstream_status=response.status_code,
                upstream_body=_excerpt(response.text),
            ) from exc
        if not isinstance(result, dict):
            raise UpstreamError(
                "Apps Script returned a non-object JSON payload.",
                upstream_status=response.status_code,
            )

        if not result.get("success"):
            reason = str(result.get("error") or "Unknown error")
            logger.warning("apps_script_bulk_update_rejected sheet=%s reason=%s", sheet_name, reason)
            raise ApplicationError(reason, upstream_status=response.status_code)

        updated_count = _as_count(result.get("updatedCount"))
        message = str(result.get("message") or "")
        flow_info(
            logger,
            "apps_script_bulk_update_done sheet=%s updated=%s",
            sheet_name,
            updated_count,
            category="bulk_edit",
        )
        return BulkUpdateResult(updated_count=updated_count, message=message)
