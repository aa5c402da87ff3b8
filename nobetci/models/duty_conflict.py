"""DutyConflict model: a primary/secondary disagreement queued for review."""

from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nobetci.db.session import Base


class DutyConflict(Base):
    """Conflict raised when sources agree on the match key but not on fields."""

    __tablename__ = "duty_conflicts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    province_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("provinces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    district_slug: Mapped[str] = mapped_column(String(128), nullable=False)
    duty_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
