from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import (
    String, Integer, DateTime, Text, JSON, Boolean, Index
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    # stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Source(Base):
    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # rss, hackernews, ...

    # adapter-specific, validated lazily by the adapter
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )


class Digest(Base):
    __tablename__ = "digests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False)  # 4h/daily/weekly/monthly
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # structured items + date label, empty when the model output was unparseable
    metadata_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )


class PushedItem(Base):
    __tablename__ = "pushed_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    url_hash: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    title_hash: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    digest_type: Mapped[str] = mapped_column(String(20), nullable=False)

    pushed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_pushed_title_hash", "title_hash"),
        Index("idx_pushed_at", "pushed_at"),
    )
