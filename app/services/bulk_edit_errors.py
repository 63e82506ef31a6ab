from __future__ import annotations


class BulkEditFailure(Exception):
    code = "BULK_EDIT_FAILED"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        upstream_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.upstream_status is not None:
            detail["upstream_status"] = self.upstream_status
        return detail


class Unauthenticated(BulkEditFailure):
    code = "UNAUTHENTICATED"
    status_code = 401


class PersistenceError(BulkEditFailure):
    code = "PERSISTENCE_ERROR"
    status_code = 500


class LogNotFound(BulkEditFailure):
    code = "LOG_NOT_FOUND"
    status_code = 404


class InvalidStatusTransition(BulkEditFailure):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class GatewayError(BulkEditFailure):
    """Anything that means the edit was not applied upstream."""


class NotConfigured(GatewayError):
    code = "NOT_CONFIGURED"
    status_code = 400


class InvalidBulkUpdate(GatewayError):
    code = "INVALID_BULK_UPDATE"
    status_code = 400


class UpstreamError(GatewayError):
    code = "UPSTREAM_ERROR"
    status_code = 500


class PreflightFailed(UpstreamError):
    code = "PREFLIGHT_FAILED"
    status_code = 400


class ApplicationError(GatewayError):
    code = "APPLICATION_ERROR"
    status_code = 400
