"""DutyRecord and DutyEvidence models."""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nobetci.db.session import Base


class DutyRecord(Base):
    """A pharmacy's duty for one duty date. Unique per (pharmacy_id, duty_date).

    Rows are expired (duty_end moved to now) rather than deleted when the
    latest pull no longer lists the pharmacy.
    """

    __tablename__ = "duty_records"

    __table_args__ = (
        UniqueConstraint("pharmacy_id", "duty_date", name="uq_duty_records_pharmacy_date"),
        Index("ix_duty_records_province_date", "province_id", "duty_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False
    )
    province_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("provinces.id", ondelete="CASCADE"), nullable=False
    )
    district_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("districts.id", ondelete="CASCADE"), nullable=False
    )
    duty_date: Mapped[date] = mapped_column(Date, nullable=False)
    duty_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duty_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    verification_source_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )


class DutyEvidence(Base):
    """Audit trail: one row per duty record x contributing source URL."""

    __tablename__ = "duty_evidence"

    __table_args__ = (
        UniqueConstraint(
            "duty_record_id",
            "source_id",
            "source_url",
            name="uq_duty_evidence_record_source_url",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    duty_record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("duty_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    extracted_payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
