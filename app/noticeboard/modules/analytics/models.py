from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.noticeboard.models import Base
from app.noticeboard.utils import utcnow


class SiteVisit(Base):
    """Anonymous page view. ``notice_id`` is NULL for homepage visits."""

    __tablename__ = "site_visits"
    __table_args__ = (
        Index("idx_site_visits_notice_date", "notice_id", "visit_date"),
        Index("idx_site_visits_visit_date", "visit_date"),
        Index("idx_site_visits_session_time", "session_id", "visit_time"),
        Index("idx_site_visits_ip_session", "ip_address", "session_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    notice_id: Mapped[int | None] = mapped_column(ForeignKey("notices.id", ondelete="SET NULL"), nullable=True)

    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referer: Mapped[str | None] = mapped_column(String(500), nullable=True)

    visit_date: Mapped[date] = mapped_column(Date, nullable=False, default=lambda: utcnow().date())
    visit_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
