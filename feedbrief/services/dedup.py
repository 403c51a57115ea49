from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from feedbrief.models.schemas import GENERAL, HIGH_PRIORITY, FetchedItem, HistorySnapshot, SynthesizedItem
from feedbrief.services.history import is_pushed_before
from feedbrief.services.normalize import titles_are_similar, url_hash_key

logger = logging.getLogger(__name__)


def dedupe_items(
    items: Iterable[SynthesizedItem],
    similar: Callable[[str, str], bool] = titles_are_similar,
) -> list[SynthesizedItem]:
    """
    Collapse synthesized items that share a URL or describe the same event.

    On a collision a high-priority item replaces a general one in the slot
    the first one occupied; otherwise the first seen wins.
    """
    result: list[SynthesizedItem] = []
    keys: list[str] = []
    total = 0

    for item in items:
        total += 1
        key = url_hash_key(item.url)
        hit = None
        for i, existing in enumerate(result):
            if (key and key == keys[i]) or similar(item.title, existing.title):
                hit = i
                break

        if hit is None:
            result.append(item)
            keys.append(key)
            continue

        if item.is_high_priority and not result[hit].is_high_priority:
            result[hit] = item
            keys[hit] = key

    if len(result) < total:
        logger.info("Post-dedup: %d -> %d (removed %d duplicates)", total, len(result), total - len(result))
    return result


def drop_fabricated(items: Iterable[SynthesizedItem], inputs: Sequence[FetchedItem]) -> list[SynthesizedItem]:
    """Keep only items whose URL was part of the synthesis input."""
    known = {url_hash_key(it.url) for it in inputs if it.url}
    kept: list[SynthesizedItem] = []
    for item in items:
        if url_hash_key(item.url) in known:
            kept.append(item)
        else:
            logger.warning("Dropping item with unknown url: %s", item.url)
    return kept


def cap_categories(
    items: Iterable[SynthesizedItem],
    max_high_priority: int = 4,
    max_items: int = 15,
) -> list[SynthesizedItem]:
    """High-priority overflow is demoted to general; the list is cut at max_items."""
    out: list[SynthesizedItem] = []
    hot = 0
    for item in items:
        if item.category == HIGH_PRIORITY:
            if hot >= max_high_priority:
                item = item.model_copy(update={"category": GENERAL})
            else:
                hot += 1
        out.append(item)
    return out[:max_items]


def filter_pushed(items: Iterable[SynthesizedItem], history: HistorySnapshot) -> list[SynthesizedItem]:
    if history.empty:
        return list(items)
    return [it for it in items if not is_pushed_before(history, it.title, it.url)]
