"""Unit tests for the source adapters and the concurrent fetch stage."""

import json
import time
import unittest
from unittest.mock import MagicMock

from feedbrief.models.schemas import FetchedItem, SourceDescriptor
from feedbrief.services.adapters.base import FetchContext, TwitterFeedConfig
from feedbrief.services.adapters.github_trending import parse_trending
from feedbrief.services.adapters.registry import fetch_source, gather_fetches, parse_config
from feedbrief.services.adapters.rss import parse_feed, strip_html
from feedbrief.services.adapters.twitter import fetch_twitter_feed
from feedbrief.services.errors import ConfigError, FetchError
from feedbrief.services.http_fetch import HttpResponse

RSS = """<?xml version="1.0"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/"><channel>
  <title>Example</title>
  <item>
    <title><![CDATA[First &amp; foremost]]></title>
    <link>https://example.com/1</link>
    <description><![CDATA[<p>Hello <b>world</b></p>]]></description>
    <pubDate>Sun, 01 Mar 2026 10:00:00 GMT</pubDate>
    <dc:creator>alice</dc:creator>
  </item>
  <item>
    <title>Second</title>
    <link>https://example.com/2</link>
  </item>
  <item>
    <description>no title, no link</description>
  </item>
</channel></rss>"""

ATOM = """<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Atom entry</title>
    <link href="https://example.org/post"/>
    <summary>Short summary</summary>
    <updated>2026-03-01T09:00:00Z</updated>
    <author><name>bob</name></author>
  </entry>
</feed>"""

ATOM_LINKS = """<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Linked</title>
    <link rel="replies" type="text/html" href="https://e.com/a/comments"/>
    <link rel="alternate" type="text/html" href="https://e.com/a"/>
  </entry>
</feed>"""

ESCAPED_RSS = """<rss version="2.0"><channel><title>Example</title>
  <item>
    <title>Escaped</title>
    <link>https://e.com/b</link>
    <description>&lt;p&gt;Hello &lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
  </item>
</channel></rss>"""

TRENDING = """
<div class="Box">
<article class="Box-row">
  <h2 class="h3 lh-condensed"><a href="/acme/rocket"> acme / rocket </a></h2>
  <p class="col-9 color-fg-muted my-1 pr-4">
    A fast rocket launcher for &lt;everything&gt;
  </p>
  <div class="f6 color-fg-muted mt-2">
    <span class="d-inline-block float-sm-right">
      <svg class="octicon octicon-star"></svg>
      1,234 stars today
    </span>
  </div>
</article>
<article class="Box-row">
  <h2><a href="/login?return_to=%2Fbeta%2Ftool">Sign in</a> <a href="/beta/tool">beta / tool</a></h2>
  <div><div><p>Tool that does a thing well</p></div></div>
</article>
<article class="Box-row">
  <h2><a href="/acme/rocket">again</a></h2>
</article>
</div>
"""


class FakeHttp:
    """Serves canned bodies by url; anything else is a FetchError."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        body = self.routes.get(url)
        if body is None:
            raise FetchError(f"GET {url} returned HTTP 404")
        return HttpResponse(status=200, body=body, headers={})

    def get_json(self, url, **kwargs):
        return json.loads(self.get(url, **kwargs).body)


def _ctx(routes=None, **kwargs):
    opts = dict(http=FakeHttp(routes or {}), rsshub_url="", nitter_instances=("https://n1", "https://n2"), sleep=MagicMock())
    opts.update(kwargs)
    return FetchContext(**opts)


class TestFeeds(unittest.TestCase):
    def test_strip_html(self):
        self.assertEqual(strip_html("<p>Hello <b>World</b> &amp; co</p>"), "Hello World & co")

    def test_rss(self):
        items = parse_feed(RSS)
        self.assertEqual(len(items), 2)
        self.assertEqual(items[0].title, "First & foremost")
        self.assertEqual(items[0].url, "https://example.com/1")
        self.assertEqual(items[0].description, "Hello world")
        self.assertEqual(items[0].published_at, "Sun, 01 Mar 2026 10:00:00 GMT")
        self.assertEqual(items[0].author, "alice")
        self.assertIsNone(items[1].published_at)

    def test_atom(self):
        items = parse_feed(ATOM)
        self.assertEqual(items[0].url, "https://example.org/post")
        self.assertEqual(items[0].description, "Short summary")
        self.assertEqual(items[0].published_at, "2026-03-01T09:00:00Z")

    def test_limit(self):
        self.assertEqual(len(parse_feed(RSS, limit=1)), 1)

    def test_description_capped(self):
        body = (
            '<rss version="2.0"><channel><title>C</title>'
            f"<item><title>T</title><link>https://x.com/t</link><description>{'a' * 1000}</description></item>"
            "</channel></rss>"
        )
        self.assertEqual(len(parse_feed(body)[0].description), 400)

    def test_escaped_markup_in_description_is_stripped(self):
        items = parse_feed(ESCAPED_RSS)
        self.assertEqual(items[0].description, "Hello world")

    def test_atom_prefers_alternate_link(self):
        items = parse_feed(ATOM_LINKS)
        self.assertEqual(items[0].url, "https://e.com/a")

    def test_garbage_body(self):
        self.assertEqual(parse_feed("<html><body>not a feed</body></html>"), [])


class TestGitHubTrending(unittest.TestCase):
    def test_parse(self):
        items = parse_trending(TRENDING)
        self.assertEqual([it.title for it in items], ["acme/rocket", "beta/tool"])
        self.assertEqual(items[0].url, "https://github.com/acme/rocket")
        self.assertIn("A fast rocket launcher for <everything>", items[0].description)
        self.assertIn("⭐ 1234 stars today", items[0].description)

    def test_no_stars_counter(self):
        items = parse_trending(TRENDING)
        self.assertEqual(items[1].description, "Tool that does a thing well")

    def test_result_cap(self):
        body = "".join(
            f'<article class="Box-row"><h2><a href="/owner/repo{i}">r</a></h2></article>' for i in range(40)
        )
        self.assertEqual(len(parse_trending(body)), 20)


class TestJsonSources(unittest.TestCase):
    def test_hackernews(self):
        payload = {"hits": [
            {"title": "Big", "url": "https://big.com", "points": 300, "num_comments": 12, "objectID": "1", "created_at": "2026-03-01T09:00:00Z"},
            {"title": "Small", "url": "https://small.com", "points": 3, "objectID": "2"},
            {"title": "Ask HN: thing", "url": None, "points": 80, "num_comments": 4, "objectID": "3"},
        ]}
        url = "https://hn.algolia.com/api/v1/search?tags=front_page&hitsPerPage=40"
        ctx = _ctx({url: json.dumps(payload)})
        items = fetch_source(SourceDescriptor(name="HN", type="hackernews", config={}), ctx)
        self.assertEqual([it.title for it in items], ["Big", "Ask HN: thing"])
        self.assertEqual(items[0].description, "300 points · 12 comments")
        self.assertEqual(items[1].url, "https://news.ycombinator.com/item?id=3")
        self.assertEqual(items[0].source_name, "HN")
        self.assertEqual(items[0].source_type, "hackernews")

    def test_reddit(self):
        payload = {"data": {"children": [
            {"data": {"title": "Self post", "url": "/r/python/comments/1/x/", "selftext": "body text", "created_utc": 1772355600}},
            {"data": {"title": "Link", "url": "https://site.com/a", "score": 10, "num_comments": 2, "subreddit": "python"}},
        ]}}
        url = "https://www.reddit.com/r/python/hot.json?limit=20&raw_json=1"
        ctx = _ctx({url: json.dumps(payload)})
        items = fetch_source(SourceDescriptor(name="r/python", type="reddit", config='{"subreddit": "r/python"}'), ctx)
        self.assertEqual(items[0].url, "https://www.reddit.com/r/python/comments/1/x/")
        self.assertEqual(items[0].description, "body text")
        self.assertEqual(items[0].published_at, "1772355600")
        self.assertEqual(items[1].description, "↑10 · 2 comments · r/python")

    def test_reddit_min_score(self):
        payload = {"data": {"children": [
            {"data": {"title": "low", "url": "https://site.com/low", "score": 1}},
            {"data": {"title": "high", "url": "https://site.com/high", "score": 900}},
            {"data": {"title": "unscored", "url": "https://site.com/none"}},
        ]}}
        url = "https://www.reddit.com/r/x/hot.json?limit=20&raw_json=1"
        ctx = _ctx({url: json.dumps(payload)})
        items = fetch_source(
            SourceDescriptor(name="r/x", type="reddit", config={"subreddit": "x", "min_score": 100}), ctx
        )
        self.assertEqual([it.title for it in items], ["high"])

    def test_reddit_negative_min_score_rejected(self):
        with self.assertRaises(ConfigError):
            parse_config(SourceDescriptor(name="r/x", type="reddit", config={"subreddit": "x", "min_score": -1}))


class TestRegistry(unittest.TestCase):
    def test_unknown_type(self):
        with self.assertRaises(ConfigError):
            parse_config(SourceDescriptor(name="x", type="carrier_pigeon", config={}))

    def test_invalid_config(self):
        bad = [
            ("rss", {"url": "ftp://nope"}),
            ("rss", {}),
            ("reddit", {"subreddit": "has spaces"}),
            ("hackernews", {"filter": "worst"}),
            ("twitter_feed", {}),
            ("twitter_list", {"url": "https://x.com/someone"}),
            ("rss", "{not json"),
        ]
        for type_, config in bad:
            with self.assertRaises(ConfigError, msg=(type_, config)):
                parse_config(SourceDescriptor(name="x", type=type_, config=config))

    def test_valid_configs(self):
        self.assertEqual(parse_config(SourceDescriptor(name="x", type="twitter_feed", config={"handle": "@karpathy"})).screen_name, "karpathy")
        cfg = parse_config(SourceDescriptor(name="x", type="twitter_list", config={"url": "https://x.com/i/lists/12345"}))
        self.assertEqual(cfg.list_id, "12345")
        self.assertEqual(parse_config(SourceDescriptor(name="x", type="github_trending", config=None)).since, "daily")


class TestTwitter(unittest.TestCase):
    FEED = "<rss><item><title>tweet</title><link>https://x.com/a/status/1</link></item></rss>"

    def test_all_backends_down_returns_empty(self):
        ctx = _ctx(rsshub_url="https://rsshub.local", rsshub_retries=3, rsshub_retry_delay=5.0)
        items = fetch_twitter_feed(TwitterFeedConfig(username="karpathy"), ctx)
        self.assertEqual(items, [])
        self.assertEqual(ctx.http.calls.count("https://rsshub.local/twitter/user/karpathy"), 3)
        self.assertEqual(ctx.sleep.call_count, 2)
        self.assertIn("https://n2/karpathy/rss", ctx.http.calls)

    def test_falls_through_to_second_mirror(self):
        ctx = _ctx({"https://n2/karpathy/rss": self.FEED})
        items = fetch_twitter_feed(TwitterFeedConfig(handle="@karpathy"), ctx)
        self.assertEqual([it.title for it in items], ["tweet"])

    def test_rsshub_first(self):
        ctx = _ctx({"https://rsshub.local/twitter/user/karpathy": self.FEED}, rsshub_url="https://rsshub.local")
        fetch_twitter_feed(TwitterFeedConfig(username="karpathy"), ctx)
        self.assertEqual(ctx.http.calls, ["https://rsshub.local/twitter/user/karpathy"])


class TestGatherFetches(unittest.TestCase):
    def test_failures_are_isolated_and_order_kept(self):
        sources = [SourceDescriptor(id=i, name=f"s{i}", type="rss", config={"url": f"https://s{i}"}) for i in range(4)]

        def fake_fetch(source, ctx):
            if source.name == "s1":
                raise FetchError("timeout")
            if source.name == "s2":
                raise KeyError("boom")
            if source.name == "s0":
                time.sleep(0.05)
            return [FetchedItem(title=f"{source.name}-{j}", url=f"https://{source.name}/{j}") for j in range(2)]

        outcomes = gather_fetches(sources, _ctx(), max_workers=4, fetch=fake_fetch)
        self.assertEqual([o.source.name for o in outcomes], ["s0", "s1", "s2", "s3"])
        self.assertEqual([o.ok for o in outcomes], [True, False, False, True])
        self.assertIsInstance(outcomes[2].error, FetchError)
        self.assertEqual([it.title for it in outcomes[0].items], ["s0-0", "s0-1"])

    def test_config_error_reported(self):
        sources = [SourceDescriptor(name="bad", type="nope", config={})]
        outcomes = gather_fetches(sources, _ctx())
        self.assertIsInstance(outcomes[0].error, ConfigError)

    def test_no_sources(self):
        self.assertEqual(gather_fetches([], _ctx()), [])


if __name__ == "__main__":
    unittest.main()
