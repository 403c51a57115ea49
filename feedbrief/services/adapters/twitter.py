"""
X/Twitter timelines and lists.

Resolved through an RSSHub bridge when one is configured, then through the
Nitter mirrors in order. This source type is expected to be down a lot, so
running out of options is a warning and an empty result, never an error.
"""
from __future__ import annotations

import logging

from feedbrief.models.schemas import FetchedItem
from feedbrief.services.adapters.base import FetchContext, TwitterFeedConfig, TwitterListConfig
from feedbrief.services.adapters.rss import parse_feed
from feedbrief.services.errors import FetchError

logger = logging.getLogger(__name__)


def _fetch_rss(ctx: FetchContext, url: str, limit: int) -> list[FetchedItem]:
    return parse_feed(ctx.http.get(url).body, limit)


def fetch_rsshub(ctx: FetchContext, path: str, limit: int) -> list[FetchedItem]:
    """Retries while RSSHub answers empty or fails, up to ctx.rsshub_retries attempts."""
    for attempt in range(1, ctx.rsshub_retries + 1):
        try:
            items = _fetch_rss(ctx, f"{ctx.rsshub_url}{path}", limit)
            if items:
                return items
            reason = "empty result"
        except FetchError as e:
            reason = str(e)
        if attempt < ctx.rsshub_retries:
            logger.info(
                "RSSHub %s: %s, retrying in %.0fs (%d/%d)",
                path, reason, ctx.rsshub_retry_delay, attempt, ctx.rsshub_retries,
            )
            ctx.sleep(ctx.rsshub_retry_delay)
        else:
            logger.warning("RSSHub %s: %s, giving up", path, reason)
    return []


def fetch_nitter(ctx: FetchContext, path: str, limit: int) -> list[FetchedItem]:
    for instance in ctx.nitter_instances:
        try:
            items = _fetch_rss(ctx, f"{instance.rstrip('/')}{path}", limit)
        except FetchError as e:
            logger.debug("Nitter mirror %s failed: %s", instance, e)
            continue
        if items:
            return items
    return []


def _resolve(ctx: FetchContext, rsshub_path: str, nitter_path: str, limit: int, label: str) -> list[FetchedItem]:
    if ctx.rsshub_url:
        items = fetch_rsshub(ctx, rsshub_path, limit)
        if items:
            return items

    items = fetch_nitter(ctx, nitter_path, limit)
    if items:
        return items

    if not ctx.rsshub_url:
        logger.warning(
            "X/Twitter fetch failed for %s: RSSHUB_URL is not set and no Nitter mirror answered.",
            label,
        )
    else:
        logger.warning("X/Twitter fetch failed for %s: neither RSSHub nor Nitter returned data.", label)
    return []


def fetch_twitter_feed(config: TwitterFeedConfig, ctx: FetchContext) -> list[FetchedItem]:
    name = config.screen_name
    return _resolve(ctx, f"/twitter/user/{name}", f"/{name}/rss", config.limit, f"@{name}")


def fetch_twitter_list(config: TwitterListConfig, ctx: FetchContext) -> list[FetchedItem]:
    list_id = config.list_id
    return _resolve(ctx, f"/twitter/list/{list_id}", f"/i/lists/{list_id}/rss", config.limit, f"list {list_id}")
