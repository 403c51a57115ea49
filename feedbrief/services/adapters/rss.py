"""
RSS / Atom adapter.

Feeds in the wild are often not well-formed XML. feedparser falls back to
its loose parser on those (and flags the feed as ``bozo``) instead of
failing, so a broken <description> does not cost us the title and link of
the same entry.
"""
from __future__ import annotations

import logging

import feedparser
from bs4 import BeautifulSoup

from feedbrief.models.schemas import DESCRIPTION_LIMIT, FetchedItem
from feedbrief.services.adapters.base import FeedConfig, FetchContext

logger = logging.getLogger(__name__)


def strip_html(s: str | None) -> str:
    if not s:
        return ""
    text = BeautifulSoup(s, "html.parser").get_text(separator=" ")
    return " ".join(text.split())


def _entry_body(entry) -> str:
    # content:encoded / atom:content first, then description / summary
    for content in entry.get("content") or []:
        if content.get("value"):
            return content["value"]
    return entry.get("summary", "")


def parse_feed(body: str, limit: int = 20) -> list[FetchedItem]:
    feed = feedparser.parse(body or "")
    if feed.bozo and not feed.entries:
        logger.debug("Feed could not be parsed: %s", feed.get("bozo_exception"))

    items: list[FetchedItem] = []
    for entry in feed.entries:
        if len(items) >= limit:
            break
        title = strip_html(entry.get("title"))
        link = (entry.get("link") or entry.get("id") or "").strip()
        if not title and not link:
            continue
        published = entry.get("published") or entry.get("updated")
        items.append(
            FetchedItem(
                title=title,
                url=link,
                description=strip_html(_entry_body(entry))[:DESCRIPTION_LIMIT],
                published_at=published or None,
                author=entry.get("author") or None,
            )
        )
    return items


def fetch_feed(config: FeedConfig, ctx: FetchContext) -> list[FetchedItem]:
    res = ctx.http.get(config.url)
    return parse_feed(res.body, config.limit)
