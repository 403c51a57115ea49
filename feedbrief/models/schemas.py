from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class DigestType(str, Enum):
    FOUR_HOURS = "4h"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


HIGH_PRIORITY = "high-priority"
GENERAL = "general"
CATEGORIES = (HIGH_PRIORITY, GENERAL)

DESCRIPTION_LIMIT = 400


class FetchedItem(BaseModel):
    title: str = ""
    url: str = ""
    description: str = ""
    published_at: str | None = None
    author: str | None = None
    source_name: str = ""
    source_type: str = ""

    @field_validator("description")
    @classmethod
    def _cap_description(cls, v: str) -> str:
        return (v or "")[:DESCRIPTION_LIMIT]


class SynthesizedItem(BaseModel):
    title: str
    url: str = ""
    summary: str
    category: str = GENERAL
    source: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, v: Any) -> str:
        # models drift between labels; anything unrecognised is general
        v = str(v or "").strip().lower()
        if v in {"high-priority", "high priority", "high_priority", "hot", "重要动态"}:
            return HIGH_PRIORITY
        return GENERAL

    @property
    def is_high_priority(self) -> bool:
        return self.category == HIGH_PRIORITY


class SourceDescriptor(BaseModel):
    id: int | str | None = None
    name: str
    type: str
    config: dict[str, Any] | str | None = None

    def config_dict(self) -> dict[str, Any]:
        """Returns the raw config, decoding it when stored as a JSON string."""
        cfg = self.config
        if cfg is None or cfg == "":
            return {}
        if isinstance(cfg, str):
            decoded = json.loads(cfg)
            if not isinstance(decoded, dict):
                raise ValueError("source config must be a JSON object")
            return decoded
        return dict(cfg)


class HistorySnapshot(BaseModel):
    url_hashes: set[str] = Field(default_factory=set)
    title_hashes: set[str] = Field(default_factory=set)
    titles: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.url_hashes or self.title_hashes or self.titles)


class DedupStats(BaseModel):
    before: int = 0
    after: int = 0
    stale: int = 0
    batch: int = 0
    history: int = 0


class DigestResult(BaseModel):
    content: str
    items: list[SynthesizedItem] = Field(default_factory=list)
    structured: bool = False
    date_str: str = ""
    digest_type: str = DigestType.FOUR_HOURS.value

    def metadata(self) -> dict[str, Any]:
        if not self.structured:
            return {}
        return {
            "items": [it.model_dump() for it in self.items],
            "dateStr": self.date_str,
            "digestType": self.digest_type,
        }


class DeliveryReport(BaseModel):
    mode: str = "disabled"  # cards | text | disabled
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    pushed: list[SynthesizedItem] = Field(default_factory=list)


class RunSummary(BaseModel):
    digest_type: str
    status: str = "ok"  # ok | skipped | failed
    items_fetched: int = 0
    items_after_dedup: int = 0
    items_synthesized: int = 0
    items_pushed: int = 0
    digest_id: int | None = None
    dedup: DedupStats = Field(default_factory=DedupStats)
    errors: dict[str, int] = Field(
        default_factory=lambda: {
            "fetch": 0,
            "config": 0,
            "synthesis": 0,
            "distribution": 0,
            "persistence": 0,
        }
    )

    def count_error(self, stage: str, n: int = 1) -> None:
        self.errors[stage] = self.errors.get(stage, 0) + n

    @property
    def failed(self) -> bool:
        return self.status == "failed"
