from __future__ import annotations

import logging
from datetime import datetime

from feedbrief.config.settings import get_settings
from feedbrief.db.database import get_engine
from feedbrief.models.schemas import RunSummary
from feedbrief.services.adapters.base import FetchContext
from feedbrief.services.adapters.registry import gather_fetches
from feedbrief.services.dedup import filter_pushed
from feedbrief.services.deep_summary import generate_deep_summaries
from feedbrief.services.digest_sink import DigestSink, HttpDigestSink, SqlDigestSink
from feedbrief.services.errors import ConfigError, FetchError, PersistenceError, SynthesisError
from feedbrief.services.history import PushHistoryStore
from feedbrief.services.prefilter import prefilter_items
from feedbrief.services.sources import HttpSourceRegistry, SourceRegistry, SqlSourceRegistry
from feedbrief.services.synthesizer import DigestSynthesizer
from feedbrief.services.webhook_delivery import WebhookDelivery
from feedbrief.workflows.build_digest import render_markdown

logger = logging.getLogger(__name__)


def _default_registry(ctx: FetchContext) -> SourceRegistry:
    s = get_settings()
    if s.api_base_url:
        return HttpSourceRegistry(s.api_base_url, ctx.http)
    return SqlSourceRegistry(get_engine())


def _default_sink(ctx: FetchContext) -> DigestSink:
    s = get_settings()
    if s.api_base_url:
        return HttpDigestSink(s.api_base_url, s.api_key, ctx.http)
    return SqlDigestSink(get_engine())


def run_digest(
    digest_type: str,
    deep_mode: bool = False,
    registry: SourceRegistry | None = None,
    ctx: FetchContext | None = None,
    store: PushHistoryStore | None = None,
    synthesizer: DigestSynthesizer | None = None,
    sink: DigestSink | None = None,
    delivery: WebhookDelivery | None = None,
    now: datetime | None = None,
) -> RunSummary:
    """
    One pipeline execution: fetch, pre-dedup, synthesize, filter against
    history, optionally deepen, persist, push.

    Collaborators default to the configured ones; tests pass fakes.
    """
    s = get_settings()
    summary = RunSummary(digest_type=digest_type)

    ctx = ctx or FetchContext.from_settings()
    registry = registry or _default_registry(ctx)
    store = store or PushHistoryStore(get_engine())

    # 1) Sources
    try:
        sources = registry.list_active_sources()
    except (FetchError, PersistenceError) as e:
        logger.error("Could not load sources: %s", e)
        summary.status = "failed"
        return summary
    if not sources:
        logger.error("No active sources configured.")
        summary.status = "failed"
        return summary
    logger.info("Found %d active sources: %s", len(sources), ", ".join(src.name for src in sources))

    # 2) Fetch (all sources in parallel, failures isolated)
    fetched = []
    for outcome in gather_fetches(sources, ctx, max_workers=s.fetch_concurrency):
        if outcome.ok:
            fetched.extend(outcome.items)
        elif isinstance(outcome.error, ConfigError):
            summary.count_error("config")
        else:
            summary.count_error("fetch")
    summary.items_fetched = len(fetched)

    if not fetched:
        logger.error("Every source failed or returned nothing.")
        summary.status = "failed"
        return summary
    logger.info("Collected %d items.", len(fetched))

    # 3) History snapshot + pre-synthesis dedup
    history = store.load(s.history_window_hours, now=now)
    store.prune(s.history_retention_days, now=now)
    logger.info("Loaded push history: %d urls, %d titles.", len(history.url_hashes), len(history.title_hashes))

    kept, stats = prefilter_items(fetched, history, s.max_article_age_hours, now=now)
    summary.dedup = stats
    summary.items_after_dedup = len(kept)
    if stats.before != stats.after:
        logger.info(
            "Pre-dedup: %d -> %d (batch %d, history %d, stale %d)",
            stats.before, stats.after, stats.batch, stats.history, stats.stale,
        )
    if not kept:
        logger.info("Everything fetched was already pushed recently, skipping.")
        summary.status = "skipped"
        return summary

    # 4) Synthesis
    synthesizer = synthesizer or DigestSynthesizer()
    try:
        result = synthesizer.synthesize(kept, digest_type, now=now)
    except SynthesisError as e:
        logger.error("Digest synthesis failed: %s", e)
        summary.count_error("synthesis")
        summary.status = "failed"
        return summary

    # 5) Post-synthesis history filter
    if result.structured:
        remaining = filter_pushed(result.items, history)
        if len(remaining) < len(result.items):
            logger.info("Post-dedup: %d -> %d (already pushed).", len(result.items), len(remaining))
            result.items = remaining
            if remaining:
                result.content = render_markdown(remaining, digest_type, result.date_str)
        if not result.items:
            logger.info("Every synthesized item was already pushed, skipping.")
            summary.status = "skipped"
            return summary
    summary.items_synthesized = len(result.items)

    # 6) Deep mode
    if deep_mode:
        section = generate_deep_summaries(
            result.content,
            kept,
            ctx.http,
            synthesizer.client,
            language=synthesizer.language,
            max_workers=s.fetch_concurrency,
        )
        if section:
            result.content = f"{result.content}\n\n{section}"

    # 7) Persist
    sink = sink or _default_sink(ctx)
    try:
        summary.digest_id = sink.create_digest(digest_type, result.content, result.metadata())
    except PersistenceError as e:
        logger.error("Could not save digest: %s", e)
        summary.count_error("persistence")
        summary.status = "failed"
        return summary
    logger.info("Digest saved, id=%s.", summary.digest_id)

    # 8) Distribute
    delivery = delivery or WebhookDelivery(http=ctx.http, history=store)
    report = delivery.deliver(result, inputs=kept if s.strict_urls else None, history=history)
    if report.mode == "disabled":
        logger.info("Webhook not configured, push skipped.")
    summary.count_error("distribution", report.failed)
    summary.items_pushed = report.succeeded if report.mode == "cards" else 0

    return summary
