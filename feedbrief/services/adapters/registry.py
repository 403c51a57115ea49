"""
Dispatch from a source descriptor to its adapter, and the concurrent fetch
stage that runs every active source.
"""
from __future__ import annotations

import concurrent.futures
import json
import logging
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, Sequence

from pydantic import BaseModel, ValidationError

from feedbrief.models.schemas import FetchedItem, SourceDescriptor
from feedbrief.services.adapters.base import (
    FeedConfig,
    FetchContext,
    GitHubTrendingConfig,
    HackerNewsConfig,
    RedditConfig,
    TwitterFeedConfig,
    TwitterListConfig,
)
from feedbrief.services.adapters.github_trending import fetch_github_trending
from feedbrief.services.adapters.hackernews import fetch_hackernews
from feedbrief.services.adapters.reddit import fetch_reddit
from feedbrief.services.adapters.rss import fetch_feed
from feedbrief.services.adapters.twitter import fetch_twitter_feed, fetch_twitter_list
from feedbrief.services.errors import ConfigError, FetchError

logger = logging.getLogger(__name__)


class Adapter(NamedTuple):
    config_model: type[BaseModel]
    fetch: Callable[[BaseModel, FetchContext], list[FetchedItem]]


ADAPTERS: dict[str, Adapter] = {
    "rss": Adapter(FeedConfig, fetch_feed),
    "atom": Adapter(FeedConfig, fetch_feed),
    "digest_feed": Adapter(FeedConfig, fetch_feed),
    "hackernews": Adapter(HackerNewsConfig, fetch_hackernews),
    "reddit": Adapter(RedditConfig, fetch_reddit),
    "github_trending": Adapter(GitHubTrendingConfig, fetch_github_trending),
    "twitter_feed": Adapter(TwitterFeedConfig, fetch_twitter_feed),
    "twitter_list": Adapter(TwitterListConfig, fetch_twitter_list),
}


def parse_config(source: SourceDescriptor) -> BaseModel:
    adapter = ADAPTERS.get(source.type)
    if adapter is None:
        raise ConfigError(f"Unsupported source type {source.type!r} ({source.name})")
    try:
        return adapter.config_model.model_validate(source.config_dict())
    except (ValidationError, ValueError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid config for {source.name} ({source.type}): {e}") from e


def fetch_source(source: SourceDescriptor, ctx: FetchContext) -> list[FetchedItem]:
    config = parse_config(source)
    items = ADAPTERS[source.type].fetch(config, ctx)
    return [
        it.model_copy(update={"source_name": source.name, "source_type": source.type})
        for it in items
    ]


@dataclass
class FetchOutcome:
    source: SourceDescriptor
    items: list[FetchedItem] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def gather_fetches(
    sources: Sequence[SourceDescriptor],
    ctx: FetchContext,
    max_workers: int = 6,
    fetch: Callable[[SourceDescriptor, FetchContext], list[FetchedItem]] = fetch_source,
) -> list[FetchOutcome]:
    """
    Fetch every source in parallel and wait for all of them.

    One outcome per source, in the order the sources were given; a failing
    source carries its exception and no items, and never affects the others.
    """
    if not sources:
        return []

    outcomes: list[FetchOutcome] = [FetchOutcome(source=s) for s in sources]
    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_idx = {
            executor.submit(fetch, source, ctx): i for i, source in enumerate(sources)
        }
        for future in concurrent.futures.as_completed(future_to_idx):
            i = future_to_idx[future]
            source = sources[i]
            try:
                outcomes[i].items = future.result()
                logger.info("Fetched %s (%s): %d items", source.name, source.type, len(outcomes[i].items))
            except (FetchError, ConfigError) as e:
                outcomes[i].error = e
                logger.warning("Source %s (%s) skipped: %s", source.name, source.type, e)
            except Exception as e:  # pylint: disable=broad-exception-caught
                outcomes[i].error = FetchError(f"{e.__class__.__name__}: {e}")
                logger.error("Source %s (%s) raised unexpectedly: %s", source.name, source.type, e)
    return outcomes
