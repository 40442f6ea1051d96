from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.noticeboard.constants import PRIORITIES, STATUS_DRAFT, STATUS_PUBLISHED, STATUSES
from app.noticeboard.models import Base, User
from app.noticeboard.utils import utcnow


class Notice(Base):
    __tablename__ = "notices"
    __table_args__ = (
        Index("idx_notices_status_published", "status", "published_at"),
        Index("idx_notices_priority", "priority"),
        Index("idx_notices_created_by", "created_by"),
        Index("idx_notices_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # [{name, url, size, type, originalName}]
    files: Mapped[list | None] = mapped_column(JSON, nullable=True)

    priority: Mapped[str] = mapped_column(
        Enum(*PRIORITIES, name="notice_priority", native_enum=False),
        nullable=False,
        default="medium",
    )
    # draft -> published -> draft
    status: Mapped[str] = mapped_column(
        Enum(*STATUSES, name="notice_status", native_enum=False),
        nullable=False,
        default=STATUS_DRAFT,
    )

    slug: Mapped[str] = mapped_column(String(600), nullable=False, unique=True)

    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    creator: Mapped[User | None] = relationship(lazy="selectin")

    @property
    def is_published(self) -> bool:
        return self.status == STATUS_PUBLISHED and self.published_at is not None

    @property
    def attachments(self) -> list[dict]:
        return [f for f in (self.files or []) if isinstance(f, dict)]

    @property
    def creator_name(self) -> str | None:
        return self.creator.full_name if self.creator else None

    @property
    def creator_username(self) -> str | None:
        return self.creator.username if self.creator else None
