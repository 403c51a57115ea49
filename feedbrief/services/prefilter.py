from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable

from feedbrief.models.schemas import DedupStats, FetchedItem, HistorySnapshot
from feedbrief.services.history import is_pushed_before
from feedbrief.services.normalize import batch_url_key

logger = logging.getLogger(__name__)


def parse_published(value: str | None) -> datetime | None:
    """
    Best-effort date parsing: RFC 822 (RSS), ISO 8601 (Atom, APIs) or epoch
    seconds. Returns an aware UTC datetime, or None when nothing matches.
    """
    if not value:
        return None
    v = str(value).strip()
    if not v:
        return None

    dt: datetime | None = None
    whole = v.split(".", 1)[0]
    if whole.isdigit() and len(whole) >= 9:
        # epoch seconds (reddit's created_utc)
        try:
            dt = datetime.fromtimestamp(float(v), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None

    if dt is None:
        try:
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            pass

    if dt is None:
        try:
            dt = parsedate_to_datetime(v)
        except (TypeError, ValueError, IndexError):
            return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_stale(item: FetchedItem, max_age: timedelta, now: datetime) -> bool:
    published = parse_published(item.published_at)
    if published is None:
        return False
    return now - published > max_age


def prefilter_items(
    items: Iterable[FetchedItem],
    history: HistorySnapshot | None = None,
    max_age_hours: int = 72,
    now: datetime | None = None,
) -> tuple[list[FetchedItem], DedupStats]:
    """
    Cheap filtering before the synthesis call, in order:
    stale items, repeated URLs within the batch, then anything already pushed.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    max_age = timedelta(hours=max_age_hours)
    history = history or HistorySnapshot()

    stats = DedupStats()
    seen_urls: set[str] = set()
    kept: list[FetchedItem] = []

    for it in items:
        stats.before += 1

        if is_stale(it, max_age, now):
            stats.stale += 1
            continue

        key = batch_url_key(it.url)
        if key:
            if key in seen_urls:
                stats.batch += 1
                continue
            seen_urls.add(key)

        if not history.empty and is_pushed_before(history, it.title, it.url):
            stats.history += 1
            continue

        kept.append(it)

    stats.after = len(kept)
    if stats.after < stats.before:
        logger.info(
            "Pre-dedup: %d -> %d (batch %d, history %d, stale %d)",
            stats.before, stats.after, stats.batch, stats.history, stats.stale,
        )
    return kept, stats
