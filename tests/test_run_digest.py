"""Unit tests for the pipeline orchestrator, with every collaborator faked."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from feedbrief.db.database import init_db, make_engine
from feedbrief.models.schemas import DeliveryReport, DigestResult, HistorySnapshot, SourceDescriptor, SynthesizedItem
from feedbrief.services.adapters.base import FetchContext
from feedbrief.services.errors import PersistenceError, SynthesisError
from feedbrief.services.history import PushHistoryStore
from feedbrief.services.http_fetch import HttpResponse
from feedbrief.services.errors import FetchError
from feedbrief.workflows.build_digest import render_markdown
from feedbrief.workflows.run_digest import run_digest

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

FEED = """<rss version="2.0"><channel><title>Feed</title>
<item><title>Rust 1.80 released with new lints</title><link>https://example.com/1</link>{date}</item>
<item><title>Apple ships Vision Pro</title><link>https://example.com/2</link>{date}</item>
</channel></rss>"""


class FakeHttp:
    def __init__(self, routes):
        self.routes = routes

    def get(self, url, **kwargs):
        if url not in self.routes:
            raise FetchError(f"GET {url} returned HTTP 404")
        return HttpResponse(status=200, body=self.routes[url], headers={})


class FakeRegistry:
    def __init__(self, sources):
        self.sources = sources

    def list_active_sources(self):
        return self.sources


def _syn(title, url, category="general"):
    return SynthesizedItem(title=title, url=url, summary=f"about {title}", category=category, source="Feed")


def _result(items, digest_type="4h"):
    return DigestResult(
        content=render_markdown(items, digest_type, "2026-03-01 20:00 CST"),
        items=items,
        structured=True,
        date_str="2026-03-01 20:00 CST",
        digest_type=digest_type,
    )


class TestRunDigest(unittest.TestCase):
    def setUp(self):
        engine = make_engine("sqlite://")
        init_db(engine)
        self.store = PushHistoryStore(engine)
        self.sources = [SourceDescriptor(id=1, name="Feed", type="rss", config={"url": "https://feed.example.com/rss"})]
        self.ctx = FetchContext(http=FakeHttp({"https://feed.example.com/rss": FEED.format(date="")}), sleep=MagicMock())
        self.synthesizer = MagicMock()
        self.synthesizer.synthesize.return_value = _result([
            _syn("Rust 1.80 released with new lints", "https://example.com/1", "high-priority"),
            _syn("Apple ships Vision Pro", "https://example.com/2"),
        ])
        self.sink = MagicMock()
        self.sink.create_digest.return_value = 7
        self.delivery = MagicMock()
        self.delivery.deliver.return_value = DeliveryReport(mode="cards", attempted=2, succeeded=2)

    def _run(self, digest_type="4h", **kwargs):
        opts = dict(
            registry=FakeRegistry(self.sources),
            ctx=self.ctx,
            store=self.store,
            synthesizer=self.synthesizer,
            sink=self.sink,
            delivery=self.delivery,
            now=NOW,
        )
        opts.update(kwargs)
        return run_digest(digest_type, **opts)

    def test_happy_path(self):
        self.sources += [
            SourceDescriptor(id=2, name="Down", type="rss", config={"url": "https://down.example.com/rss"}),
            SourceDescriptor(id=3, name="Broken", type="carrier_pigeon", config={}),
        ]
        summary = self._run("daily")

        self.assertEqual(summary.status, "ok")
        self.assertFalse(summary.failed)
        self.assertEqual(summary.items_fetched, 2)
        self.assertEqual(summary.items_after_dedup, 2)
        self.assertEqual(summary.items_synthesized, 2)
        self.assertEqual(summary.items_pushed, 2)
        self.assertEqual(summary.digest_id, 7)
        self.assertEqual(summary.errors["fetch"], 1)
        self.assertEqual(summary.errors["config"], 1)

        fetched = self.synthesizer.synthesize.call_args.args[0]
        self.assertEqual([it.source_name for it in fetched], ["Feed", "Feed"])
        digest_type, content, metadata = self.sink.create_digest.call_args.args
        self.assertEqual(digest_type, "daily")
        self.assertIn("Apple ships Vision Pro", content)
        self.assertEqual(len(metadata["items"]), 2)
        self.delivery.deliver.assert_called_once()

    def test_nothing_fetched_fails(self):
        self.ctx = FetchContext(http=FakeHttp({}), sleep=MagicMock())
        summary = self._run()
        self.assertTrue(summary.failed)
        self.assertEqual(summary.errors["fetch"], 1)
        self.synthesizer.synthesize.assert_not_called()

    def test_no_sources_fails(self):
        self.sources = []
        self.assertTrue(self._run().failed)

    def test_all_stale_skips_without_error(self):
        old = (NOW - timedelta(hours=100)).strftime("%a, %d %b %Y %H:%M:%S GMT")
        self.ctx = FetchContext(
            http=FakeHttp({"https://feed.example.com/rss": FEED.format(date=f"<pubDate>{old}</pubDate>")}),
            sleep=MagicMock(),
        )
        summary = self._run()
        self.assertEqual(summary.status, "skipped")
        self.assertFalse(summary.failed)
        self.assertEqual(summary.items_after_dedup, 0)
        self.assertEqual(summary.dedup.stale, 2)
        self.synthesizer.synthesize.assert_not_called()
        self.sink.create_digest.assert_not_called()

    def test_everything_already_pushed_skips(self):
        self.store.record(
            [_syn("Rust 1.80 released with new lints", "https://example.com/1"), _syn("Apple ships Vision Pro", "https://example.com/2")],
            "4h",
            pushed_at=NOW - timedelta(hours=3),
        )
        summary = self._run()
        self.assertEqual(summary.status, "skipped")
        self.assertEqual(summary.dedup.history, 2)
        self.synthesizer.synthesize.assert_not_called()

    def test_synthesis_failure(self):
        self.synthesizer.synthesize.side_effect = SynthesisError("model returned empty content")
        summary = self._run()
        self.assertTrue(summary.failed)
        self.assertEqual(summary.errors["synthesis"], 1)
        self.sink.create_digest.assert_not_called()

    def test_post_synthesis_history_filter_rebuilds_markdown(self):
        self.store.record([_syn("OpenAI raises $500M", "https://old.example.com/x")], "4h", pushed_at=NOW - timedelta(hours=5))
        self.synthesizer.synthesize.return_value = _result([
            _syn("OpenAI secures $500 million funding", "https://example.com/1", "high-priority"),
            _syn("Apple ships Vision Pro", "https://example.com/2"),
        ])
        summary = self._run()

        self.assertEqual(summary.status, "ok")
        self.assertEqual(summary.items_synthesized, 1)
        _, content, metadata = self.sink.create_digest.call_args.args
        self.assertNotIn("OpenAI", content)
        self.assertIn("Apple ships Vision Pro", content)
        self.assertEqual([it["title"] for it in metadata["items"]], ["Apple ships Vision Pro"])
        delivered = self.delivery.deliver.call_args.args[0]
        self.assertEqual(len(delivered.items), 1)

    def test_every_synthesized_item_already_pushed(self):
        self.store.record([_syn("OpenAI raises $500M", "https://old.example.com/x")], "4h", pushed_at=NOW - timedelta(hours=5))
        self.synthesizer.synthesize.return_value = _result([
            _syn("OpenAI secures $500 million funding", "https://example.com/1"),
        ])
        summary = self._run()
        self.assertEqual(summary.status, "skipped")
        self.sink.create_digest.assert_not_called()
        self.delivery.deliver.assert_not_called()

    def test_degraded_digest_still_published(self):
        self.synthesizer.synthesize.return_value = DigestResult(content="free text digest", structured=False)
        self.delivery.deliver.return_value = DeliveryReport(mode="text", attempted=1, succeeded=1)
        summary = self._run()
        self.assertEqual(summary.status, "ok")
        self.assertEqual(summary.items_synthesized, 0)
        self.assertEqual(summary.items_pushed, 0)
        self.assertEqual(self.sink.create_digest.call_args.args[2], {})

        kwargs = self.delivery.deliver.call_args.kwargs
        self.assertEqual([it.url for it in kwargs["inputs"]], [it.url for it in self.synthesizer.synthesize.call_args.args[0]])
        self.assertIsInstance(kwargs["history"], HistorySnapshot)

    def test_persistence_failure_stops_distribution(self):
        self.sink.create_digest.side_effect = PersistenceError("HTTP 500")
        summary = self._run()
        self.assertTrue(summary.failed)
        self.assertEqual(summary.errors["persistence"], 1)
        self.delivery.deliver.assert_not_called()

    def test_distribution_failures_counted(self):
        self.delivery.deliver.return_value = DeliveryReport(mode="cards", attempted=2, succeeded=1, failed=2)
        summary = self._run()
        self.assertEqual(summary.status, "ok")
        self.assertEqual(summary.errors["distribution"], 2)
        self.assertEqual(summary.items_pushed, 1)

    @patch("feedbrief.workflows.run_digest.generate_deep_summaries")
    def test_deep_mode_appends_section(self, mock_deep):
        mock_deep.return_value = "📖 Deep summaries"
        self._run(deep_mode=True)
        content = self.sink.create_digest.call_args.args[1]
        self.assertTrue(content.endswith("\n\n📖 Deep summaries"))
        self.assertIn("https://example.com/2", mock_deep.call_args.args[0])

    @patch("feedbrief.workflows.run_digest.generate_deep_summaries")
    def test_deep_mode_off_by_default(self, mock_deep):
        self._run()
        mock_deep.assert_not_called()


if __name__ == "__main__":
    unittest.main()
