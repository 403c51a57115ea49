"""
Shared pieces of the source adapters: the per-type config models and the
context every adapter receives.

An adapter is a plain function ``fetch(config, ctx) -> list[FetchedItem]``.
It raises FetchError for network/parse problems; the dispatcher turns bad
configs into ConfigError before the adapter is ever called.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Callable, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from feedbrief.config.settings import get_settings
from feedbrief.services.http_fetch import HttpFetcher

DEFAULT_NITTER_INSTANCES = (
    "https://nitter.privacydev.net",
    "https://nitter.poast.org",
    "https://nitter.1d4.us",
    "https://nitter.moomoo.me",
    "https://nitter.net",
)


@dataclass
class FetchContext:
    http: HttpFetcher
    rsshub_url: str = ""
    nitter_instances: tuple[str, ...] = DEFAULT_NITTER_INSTANCES
    rsshub_retries: int = 3
    rsshub_retry_delay: float = 5.0
    sleep: Callable[[float], None] = field(default=time.sleep)

    @classmethod
    def from_settings(cls, http: HttpFetcher | None = None) -> "FetchContext":
        s = get_settings()
        return cls(
            http=http or HttpFetcher.from_settings(),
            rsshub_url=s.rsshub_url,
            nitter_instances=tuple(s.nitter_instances) or DEFAULT_NITTER_INSTANCES,
        )


class FeedConfig(BaseModel):
    url: str
    limit: int = Field(default=20, ge=1, le=200)

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        v = v.strip()
        if not re.match(r"^https?://", v, re.IGNORECASE):
            raise ValueError("feed url must start with http:// or https://")
        return v


class HackerNewsConfig(BaseModel):
    filter: Literal["top", "new", "best", "ask", "show"] = "top"
    min_score: int = Field(default=50, ge=0)
    limit: int = Field(default=20, ge=1, le=100)


class RedditConfig(BaseModel):
    subreddit: str
    sort: Literal["hot", "new", "top", "rising"] = "hot"
    min_score: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("subreddit")
    @classmethod
    def _bare_name(cls, v: str) -> str:
        v = re.sub(r"^/?r/", "", v.strip()).strip("/")
        if not re.fullmatch(r"[A-Za-z0-9_]+", v):
            raise ValueError(f"invalid subreddit name: {v!r}")
        return v


class GitHubTrendingConfig(BaseModel):
    language: str = ""
    since: Literal["daily", "weekly", "monthly"] = "daily"


class TwitterFeedConfig(BaseModel):
    username: str | None = None
    handle: str | None = None
    limit: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def _needs_name(self) -> "TwitterFeedConfig":
        if not (self.username or self.handle):
            raise ValueError('twitter_feed needs "username" or "handle" (e.g. "@karpathy")')
        return self

    @property
    def screen_name(self) -> str:
        return (self.username or self.handle or "").strip().lstrip("@")


_LIST_URL_RE = re.compile(r"(?:twitter\.com|x\.com)/(?:[^/]+/)?lists?/([^/?#]+)", re.IGNORECASE)


class TwitterListConfig(BaseModel):
    url: str
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("url")
    @classmethod
    def _list_url(cls, v: str) -> str:
        if not _LIST_URL_RE.search(v or ""):
            raise ValueError(f"cannot find a list id in twitter list url: {v!r}")
        return v

    @property
    def list_id(self) -> str:
        m = _LIST_URL_RE.search(self.url)
        return m.group(1) if m else ""
