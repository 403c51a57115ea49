from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Callable, Sequence

import requests

from feedbrief.config.settings import get_settings
from feedbrief.models.schemas import DeliveryReport, DigestResult, FetchedItem, HistorySnapshot, SynthesizedItem
from feedbrief.services.dedup import drop_fabricated, filter_pushed
from feedbrief.services.errors import DistributionError
from feedbrief.services.history import PushHistoryStore
from feedbrief.services.http_fetch import HttpFetcher
from feedbrief.services.json_repair import rescue_items
from feedbrief.workflows.build_digest import TYPE_LABELS

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n…(truncated)"
SUCCESS_FIELDS = ("code", "StatusCode", "status_code")


# ---------------------------
# Signing
# ---------------------------

def sign_payload(secret: str, timestamp: int | str) -> dict[str, str]:
    """
    Feishu custom-bot signature: HMAC-SHA256 keyed by "timestamp\\nsecret"
    over an empty message, base64 encoded.
    """
    ts = str(timestamp)
    string_to_sign = f"{ts}\n{secret}".encode("utf-8")
    digest = hmac.new(string_to_sign, b"", digestmod=hashlib.sha256).digest()
    return {"timestamp": ts, "sign": base64.b64encode(digest).decode("utf-8")}


def is_success(body: str) -> bool:
    try:
        result = json.loads(body)
    except (TypeError, ValueError):
        return False
    if not isinstance(result, dict):
        return False
    return any(field in result and result[field] == 0 for field in SUCCESS_FIELDS)


def _error_message(body: str) -> str:
    try:
        result = json.loads(body)
    except (TypeError, ValueError):
        return body[:200]
    if isinstance(result, dict):
        return str(result.get("msg") or result.get("StatusMessage") or result)[:200]
    return str(result)[:200]


# ---------------------------
# Cards
# ---------------------------

def build_article_card(item: SynthesizedItem, index: int, total: int) -> dict[str, Any]:
    tag = "🔥" if item.is_high_priority else "📰"
    return {
        "header": {
            "title": {"tag": "plain_text", "content": f"{tag} {item.title or '(untitled)'}"},
            "template": "red" if item.is_high_priority else "turquoise",
        },
        "elements": [
            {"tag": "div", "text": {"tag": "lark_md", "content": item.summary or "-"}},
            {
                "tag": "note",
                "elements": [
                    {
                        "tag": "lark_md",
                        "content": f"{item.source or '-'} · [Read more]({item.url or '#'}) · {index}/{total}",
                    }
                ],
            },
        ],
    }


def build_header_card(items: Sequence[SynthesizedItem], digest_type: str, date_str: str) -> dict[str, Any]:
    hot = sum(1 for it in items if it.is_high_priority)
    toc = "\n".join(f"{'🔥' if it.is_high_priority else '·'} {it.title}" for it in items)
    label = TYPE_LABELS.get(digest_type, "Brief")
    return {
        "header": {
            "title": {"tag": "plain_text", "content": f"☀️ {label} | {date_str}".strip()},
            "template": "orange",
        },
        "elements": [
            {
                "tag": "div",
                "text": {
                    "tag": "lark_md",
                    "content": f"🔥 {hot} high priority · 📰 {len(items) - hot} highlights\n\n{toc}",
                },
            }
        ],
    }


def truncate_text(content: str, limit: int = 4000) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


# ---------------------------
# Sender
# ---------------------------

class WebhookDelivery:
    """
    Pushes a digest to a chat webhook, one card per item after a
    table-of-contents card, pausing between messages.

    Send failures are logged and counted, never raised. When a history
    store is attached, the items that were sent in card mode are recorded
    there (only if at least one item got through).
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        secret: str | None = None,
        http: HttpFetcher | None = None,
        history: PushHistoryStore | None = None,
        delay_seconds: float | None = None,
        text_limit: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        s = get_settings()
        self.webhook_url = s.feishu_webhook if webhook_url is None else webhook_url
        self.secret = s.feishu_secret if secret is None else secret
        self.http = http or HttpFetcher.from_settings()
        self.history = history
        self.delay_seconds = s.push_delay_seconds if delay_seconds is None else delay_seconds
        self.text_limit = text_limit or s.push_text_limit
        self.sleep = sleep
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def _payload(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.secret:
            body.update(sign_payload(self.secret, int(self.clock())))
        return body

    def _send(self, body: dict[str, Any]) -> None:
        try:
            resp = self.http.post_json(self.webhook_url, self._payload(body))
        except requests.RequestException as e:
            raise DistributionError(f"webhook request failed: {e}") from e
        if not is_success(resp.body):
            raise DistributionError(f"webhook rejected message (HTTP {resp.status}): {_error_message(resp.body)}")

    def post_card(self, card: dict[str, Any]) -> bool:
        try:
            self._send({"msg_type": "interactive", "card": card})
        except DistributionError as e:
            logger.warning("Push failed: %s", e)
            return False
        return True

    def send_items(self, items: Sequence[SynthesizedItem], digest_type: str, date_str: str = "") -> DeliveryReport:
        report = DeliveryReport(mode="cards")
        if not items:
            return report

        logger.info("Pushing %d items to webhook...", len(items))
        if not self.post_card(build_header_card(items, digest_type, date_str)):
            report.failed += 1
        self.sleep(self.delay_seconds)

        total = len(items)
        for i, item in enumerate(items, start=1):
            report.attempted += 1
            if self.post_card(build_article_card(item, i, total)):
                report.succeeded += 1
                logger.info("  ✓ [%d/%d] %s", i, total, item.title[:30])
            else:
                report.failed += 1
                logger.info("  ✗ [%d/%d] push failed", i, total)
            report.pushed.append(item)
            if i < total:
                self.sleep(self.delay_seconds)

        logger.info("Webhook push done (%d/%d).", report.succeeded, total)

        if self.history is not None:
            if report.succeeded:
                self.history.record(report.pushed, digest_type)
            else:
                logger.warning("No item reached the webhook, history left untouched.")
        return report

    def send_text(self, content: str) -> DeliveryReport:
        report = DeliveryReport(mode="text", attempted=1)
        try:
            self._send({"msg_type": "text", "content": {"text": truncate_text(content, self.text_limit)}})
            report.succeeded = 1
            logger.info("Webhook text push ok.")
        except DistributionError as e:
            report.failed = 1
            logger.warning("Webhook text push failed: %s", e)
        return report

    def deliver(
        self,
        result: DigestResult,
        inputs: Sequence[FetchedItem] | None = None,
        history: HistorySnapshot | None = None,
    ) -> DeliveryReport:
        """
        Push a digest. Items rescued from a degraded body are checked
        against ``inputs`` (unknown URLs dropped) and ``history`` (already
        pushed dropped) when those are given.
        """
        if not self.enabled:
            return DeliveryReport(mode="disabled")

        if result.structured and result.items:
            return self.send_items(result.items, result.digest_type, result.date_str)

        rescued = rescue_items(result.content)
        if rescued:
            if inputs is not None:
                rescued = drop_fabricated(rescued, inputs)
            if history is not None:
                rescued = filter_pushed(rescued, history)
            if not rescued:
                logger.info("Every rescued item was unknown or already pushed, nothing to send.")
                return DeliveryReport(mode="cards")
            logger.info("Digest body is JSON, pushing rescued items as cards.")
            return self.send_items(rescued, result.digest_type, result.date_str)

        return self.send_text(result.content)
