"""
Push history: what has already been delivered to the chat channel.

The store is the only state that survives between runs. It is written only
by the distribution stage (insert-or-ignore on url_hash) and pruned once per
run; reads are a point-in-time snapshot used by both dedup stages.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from feedbrief.db.models import PushedItem, utcnow
from feedbrief.models.schemas import HistorySnapshot
from feedbrief.services.normalize import (
    hash_str,
    title_hash,
    title_hash_key,
    titles_are_similar,
    url_hash,
)

logger = logging.getLogger(__name__)


def _naive_utc(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


class _Titled(Protocol):
    title: str
    url: str


def is_pushed_before(history: HistorySnapshot, title: str | None, url: str | None) -> bool:
    if url and url_hash(url) in history.url_hashes:
        return True
    if title and title_hash(title) in history.title_hashes:
        return True
    if title:
        for pushed_title in history.titles:
            if titles_are_similar(title, pushed_title):
                return True
    return False


class PushHistoryStore:
    """Explicit handle over the pushed_items table; writes are serialized."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._write_lock = threading.Lock()

    def load(self, window_hours: int = 72, now: datetime | None = None) -> HistorySnapshot:
        cutoff = _naive_utc(now) - timedelta(hours=window_hours)
        try:
            with Session(self.engine) as session:
                rows = session.execute(
                    select(PushedItem.url_hash, PushedItem.title_hash, PushedItem.title)
                    .where(PushedItem.pushed_at >= cutoff)
                ).all()
        except SQLAlchemyError as e:
            logger.warning("Push history unreadable, continuing without it: %s", e)
            return HistorySnapshot()

        return HistorySnapshot(
            url_hashes={r.url_hash for r in rows},
            title_hashes={r.title_hash for r in rows},
            titles=[r.title for r in rows if r.title],
        )

    def _rows(self, items: Iterable[_Titled], digest_type: str, pushed_at: datetime) -> list[dict]:
        rows: dict[str, dict] = {}
        for it in items:
            # items without a url still need a unique key
            h = url_hash(it.url) if it.url else hash_str("title:" + title_hash_key(it.title))
            if h in rows:
                continue
            rows[h] = {
                "url_hash": h,
                "title_hash": title_hash(it.title),
                "title": it.title or "",
                "url": it.url or "",
                "digest_type": digest_type,
                "pushed_at": pushed_at,
            }
        return list(rows.values())

    def _insert_ignore(self, session: Session, rows: list[dict]) -> None:
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(PushedItem).values(rows).on_conflict_do_nothing(
                index_elements=["url_hash"]
            )
            session.execute(stmt)
        elif dialect == "postgresql":
            stmt = postgresql.insert(PushedItem).values(rows).on_conflict_do_nothing(
                index_elements=["url_hash"]
            )
            session.execute(stmt)
        else:
            for row in rows:
                try:
                    with session.begin_nested():
                        session.add(PushedItem(**row))
                except IntegrityError:
                    pass  # already recorded

    def record(
        self,
        items: Iterable[_Titled],
        digest_type: str,
        pushed_at: datetime | None = None,
    ) -> int:
        """
        Insert history rows for pushed items. Returns how many rows were offered.
        Duplicates (same url_hash) are ignored; failures are logged, not raised.
        """
        rows = self._rows(items, digest_type, _naive_utc(pushed_at))
        if not rows:
            return 0

        with self._write_lock:
            try:
                with Session(self.engine) as session:
                    self._insert_ignore(session, rows)
                    session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to record push history: %s", e)
                return 0

        logger.info("Recorded %d pushed items to history.", len(rows))
        return len(rows)

    def prune(self, retention_days: int = 7, now: datetime | None = None) -> int:
        cutoff = _naive_utc(now) - timedelta(days=retention_days)
        with self._write_lock:
            try:
                with Session(self.engine) as session:
                    result = session.execute(
                        delete(PushedItem).where(PushedItem.pushed_at < cutoff)
                    )
                    session.commit()
            except SQLAlchemyError as e:
                logger.warning("Failed to prune push history: %s", e)
                return 0
        deleted = result.rowcount or 0
        if deleted:
            logger.info("Pruned %d history rows older than %d days.", deleted, retention_days)
        return deleted
