from __future__ import annotations

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")

STATUS_PENDING = "pending"
STATUS_APPLIED = "applied"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = {STATUS_APPLIED, STATUS_FAILED}


class BulkEditLog(Base):
    __tablename__ = "bulk_edit_logs"

    __table_args__ = (
        CheckConstraint(
            "status in ('pending', 'applied', 'failed')",
            name="ck_bulk_edit_logs_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sheet_name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    date_filter: Mapped[str | None] = mapped_column(String(64), nullable=True)
    filters: Mapped[dict] = mapped_column(JsonDocument, nullable=False, default=dict)
    updates: Mapped[dict] = mapped_column(JsonDocument, nullable=False, default=dict)
    affected_rows_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    affected_rows_sample: Mapped[list] = mapped_column(JsonDocument, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_PENDING,
        server_default=STATUS_PENDING,
        index=True,
    )
    updated_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    applied_at: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[object] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[object] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
