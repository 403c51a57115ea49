from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from feedbrief.config.settings import get_settings
from feedbrief.models.schemas import DigestResult, FetchedItem
from feedbrief.services.dedup import cap_categories, dedupe_items, drop_fabricated
from feedbrief.services.errors import SynthesisError
from feedbrief.services.json_repair import parse_items
from feedbrief.services.llm_client import LLMClient
from feedbrief.workflows.build_digest import TYPE_LABELS, format_date_str, render_markdown

logger = logging.getLogger(__name__)

MAX_TOKENS = 6000
DESCRIPTION_EXCERPT = 200

SYSTEM_PROMPT = """You are a professional AI news editor. From the news list you are given, pick the most valuable stories and return them as a JSON array.

Each element:
{{
  "title": "headline in {language}, at most 15 words, starts with a verb and names the core event",
  "url": "a link copied verbatim from the input; never invent or shorten one",
  "summary": "2-3 sentence brief in {language}, at most 140 characters. Sentence 1: who did what. Sentence 2: why it matters. Optional sentence 3: what to watch next. No numbering, no filler.",
  "category": "high-priority | general",
  "source": "source name"
}}

Rules:
1. Return {min_items}-{max_items} items. At most {max_hot} may be "high-priority" (only: funding rounds above $100M, major product launches, breakthrough research, important policy).
2. summary must stay within 140 characters and every sentence must carry information.
3. title must be a verb phrase ("OpenAI releases GPT-5", not "About the GPT-5 release").
4. Every url must be complete and must come from the input.
5. Write everything in {language}. Drop ads and marketing.
6. Deduplicate strictly: the same event from different sources, or different reactions to the same event, is one item. Keep the richest source and cover the whole story in one summary.
7. Inside string values use corner brackets 「」 instead of double quotes ("). Straight double quotes inside values break the JSON.
8. Output only the JSON array: no markdown code fences, no text before or after it."""

USER_PROMPT = "Below are {count} items collected from {sources}. Produce the JSON array for the {label}:\n\n{lines}"


def _item_lines(items: Sequence[FetchedItem]) -> str:
    blocks = []
    for i, it in enumerate(items, start=1):
        parts = [f"{i}. [{it.source_name}] {it.title or '(untitled)'}"]
        if it.url:
            parts.append(f"   URL: {it.url}")
        if it.description:
            parts.append(f"   Summary: {it.description[:DESCRIPTION_EXCERPT]}")
        blocks.append("\n".join(parts))
    return "\n\n".join(blocks)


class DigestSynthesizer:
    def __init__(
        self,
        client: LLMClient | None = None,
        language: str | None = None,
        max_items: int | None = None,
        max_high_priority: int | None = None,
        strict_urls: bool | None = None,
        timezone_name: str | None = None,
    ) -> None:
        s = get_settings()
        self.client = client or LLMClient()
        self.language = language or s.digest_language
        self.max_items = max_items or s.max_digest_items
        self.max_high_priority = s.max_high_priority if max_high_priority is None else max_high_priority
        self.strict_urls = s.strict_urls if strict_urls is None else strict_urls
        self.timezone_name = timezone_name or s.digest_timezone

    def build_messages(self, items: Sequence[FetchedItem], digest_type: str) -> list[dict[str, str]]:
        system = SYSTEM_PROMPT.format(
            language=self.language,
            min_items=min(10, self.max_items),
            max_items=self.max_items,
            max_hot=self.max_high_priority,
        )
        sources = list(dict.fromkeys(it.source_name for it in items if it.source_name))
        user = USER_PROMPT.format(
            count=len(items),
            sources=", ".join(sources) or "various sources",
            label=TYPE_LABELS.get(digest_type, "brief").lower(),
            lines=_item_lines(items),
        )
        return [{"role": "system", "content": system}, {"role": "user", "content": user}]

    def synthesize(
        self,
        items: Sequence[FetchedItem],
        digest_type: str,
        now: datetime | None = None,
    ) -> DigestResult:
        """
        One model call over the whole batch.

        Raises SynthesisError when the call fails or comes back empty. When
        the answer has text but no parseable items, the text is returned as
        an unstructured digest instead.
        """
        date_str = format_date_str(now, self.timezone_name)
        logger.info("Asking the model to synthesize %d items (%s)...", len(items), digest_type)

        completion = self.client.complete(self.build_messages(items, digest_type), max_tokens=MAX_TOKENS)
        raw_content = (completion.content or "").strip()
        if not raw_content:
            raise SynthesisError(completion.error or "model returned empty content")

        parsed = parse_items(raw_content)
        if not parsed:
            logger.warning("Could not parse model output as JSON, using raw text. Head: %s", raw_content[:200])
            return DigestResult(content=raw_content, structured=False, date_str=date_str, digest_type=digest_type)

        structured = parsed
        if self.strict_urls:
            structured = drop_fabricated(structured, items)
        structured = dedupe_items(structured)
        structured = cap_categories(structured, self.max_high_priority, self.max_items)

        logger.info("Synthesized %d items (%d parsed).", len(structured), len(parsed))
        return DigestResult(
            content=render_markdown(structured, digest_type, date_str),
            items=structured,
            structured=True,
            date_str=date_str,
            digest_type=digest_type,
        )
