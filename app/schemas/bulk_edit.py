from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _stringify_map(value: dict[str, Any] | None) -> dict[str, str]:
    return {str(k): "" if v is None else str(v) for k, v in (value or {}).items()}


class BulkEditSubmitRequest(BaseModel):
    sheet_name: str = Field(min_length=1, max_length=120)
    filters: dict[str, str] = Field(default_factory=dict)
    updates: dict[str, str]
    affected_rows: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("sheet_name")
    @classmethod
    def validate_sheet_name(cls, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("sheet_name is required.")
        return normalized

    @field_validator("filters", "updates", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return _stringify_map(value)
        return value

    @field_validator("updates")
    @classmethod
    def validate_updates(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("No updates provided.")
        return value


class BulkEditResolveRequest(BaseModel):
    status: str
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in {"applied", "failed"}:
            raise ValueError("status must be applied or failed.")
        return normalized


class BulkEditLogView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sheet_name: str
    date_filter: str | None = None
    filters: dict[str, str]
    updates: dict[str, str]
    affected_rows_count: int
    affected_rows_sample: list[Any]
    status: str
    updated_count: int | None = None
    notes: str | None = None
    created_by: str
    applied_by: str | None = None
    applied_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BulkEditLogListResponse(BaseModel):
    logs: list[BulkEditLogView]


class BulkEditSubmissionResponse(BaseModel):
    log_id: str
    status: str
    affected_rows_count: int
    notified_admins: int
    message: str


class BulkEditApplyResponse(BaseModel):
    log: BulkEditLogView
    success: bool
    updated_count: int | None = None
    partial: bool = False
    message: str
    error_code: str | None = None


class ReadinessResponse(BaseModel):
    configured: bool
    success: bool
    message: str


class ApplyBulkUpdateRequest(BaseModel):
    sheetName: str = Field(min_length=1)
    dateFilter: str | None = None
    filters: dict[str, str] = Field(default_factory=dict)
    updates: dict[str, str]

    @field_validator("filters", "updates", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return _stringify_map(value)
        return value
