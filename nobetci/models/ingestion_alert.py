"""IngestionAlert and IngestionRetry models."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nobetci.db.session import Base


class IngestionAlert(Base):
    """Operator-facing alert (adapter_failed, fallback_used, parser_error_threshold, ...).

    severity: info, warning, critical. resolved_at is set by the admin surface.
    """

    __tablename__ = "ingestion_alerts"

    __table_args__ = (
        Index(
            "ix_ingestion_alerts_endpoint_type_created",
            "source_endpoint_id",
            "alert_type",
            "created_at",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    province_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("provinces.id", ondelete="SET NULL"), nullable=True
    )
    source_endpoint_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("source_endpoints.id", ondelete="SET NULL"), nullable=True
    )
    alert_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class IngestionRetry(Base):
    """Pending retry request for a failed endpoint, consumed by recovery tooling."""

    __tablename__ = "ingestion_retry_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    province_slug: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_endpoint_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("source_endpoints.id", ondelete="CASCADE"), nullable=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
