"""
Deep mode: fetch the original article behind each digest link and ask the
model for a longer per-article summary, appended to the digest body.
"""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from feedbrief.models.schemas import FetchedItem
from feedbrief.services.errors import FetchError, SynthesisError
from feedbrief.services.http_fetch import HttpFetcher
from feedbrief.services.llm_client import LLMClient

logger = logging.getLogger(__name__)

MAX_ARTICLE_CHARS = 12_000
MIN_ARTICLE_CHARS = 150
MIN_CONTAINER_CHARS = 400
MIN_PARAGRAPH_CHARS = 40
SUMMARY_MAX_TOKENS = 1024
SECTION_RULE = "═" * 50

# hosts that don't serve readable article text
SKIP_ARTICLE_DOMAINS = frozenset({
    "reddit.com", "v.redd.it", "i.redd.it", "old.reddit.com",
    "twitter.com", "x.com", "t.co",
    "youtube.com", "youtu.be",
    "github.com", "gist.github.com",
    "news.ycombinator.com",
    "instagram.com", "linkedin.com", "facebook.com",
    "imgur.com", "giphy.com",
})

_URL_RE = re.compile(r"https?://[^\s)\]\"'<>]+")
_TRAILING_PUNCT_RE = re.compile(r"[.,;:!?）]+$")
NOISE_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "figure")
CONTAINER_SELECTORS = (
    "article",
    "main",
    "div[class*=article-body], div[class*=post-content], div[class*=entry-content], "
    "div[class*=story-body], div[class*=article__body], div[class*=post-body]",
    "div[id*=article], div[id*=content], div[id*=story], div[id*=post]",
)

SUMMARY_PROMPT = (
    "You are an expert article summarizer. Summarize the article below in about 250 words of {language}, "
    "using exactly this layout:\n\n"
    "**Key point**: (1-2 sentences with the most important content)\n\n"
    "**Details**:\n• ...\n• ...\n• ...\n\n"
    "**Why it matters**: (1 sentence)\n\n"
    "Output only the summary, with no preface or closing remarks."
)


def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def should_fetch_article(url: str) -> bool:
    try:
        host = _host(url)
    except ValueError:
        return False
    return bool(host) and host not in SKIP_ARTICLE_DOMAINS


def extract_urls(content: str) -> list[str]:
    """Distinct article links in order of appearance."""
    urls = (_TRAILING_PUNCT_RE.sub("", m.group(0)) for m in _URL_RE.finditer(content or ""))
    return [u for u in dict.fromkeys(urls) if should_fetch_article(u)]


def _plain(node) -> str:
    return " ".join(node.get_text(separator=" ").split())


def extract_article_text(body: str, max_chars: int = MAX_ARTICLE_CHARS) -> str:
    soup = BeautifulSoup(body or "", "html.parser")
    for tag in soup(NOISE_TAGS):
        tag.decompose()

    content = soup
    for selector in CONTAINER_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and len(_plain(node)) > MIN_CONTAINER_CHARS:
            content = node
            break

    paragraphs = [p for p in (_plain(el) for el in content.find_all("p")) if len(p) > MIN_PARAGRAPH_CHARS]
    if len(paragraphs) >= 3:
        return "\n\n".join(paragraphs)[:max_chars]
    return _plain(content)[:max_chars]


def fetch_article_text(http: HttpFetcher, url: str, max_chars: int = MAX_ARTICLE_CHARS) -> str:
    """Readable text of the page, or "" when it can't be fetched."""
    try:
        res = http.get(url)
    except FetchError as e:
        logger.info("Article fetch failed for %s: %s", url, e)
        return ""
    return extract_article_text(res.body, max_chars)


def summarize_article(
    client: LLMClient,
    title: str,
    url: str,
    source_name: str,
    text: str,
    language: str = "Chinese",
) -> str | None:
    if not text or len(text.strip()) < MIN_ARTICLE_CHARS:
        return None

    messages = [
        {"role": "system", "content": SUMMARY_PROMPT.format(language=language)},
        {
            "role": "user",
            "content": f"Source: {source_name}\nTitle: {title}\nURL: {url}\n\nArticle:\n{text}",
        },
    ]
    try:
        completion = client.complete(messages, max_tokens=SUMMARY_MAX_TOKENS)
    except SynthesisError as e:
        logger.warning("Deep summary request failed for %s: %s", url, e)
        return None
    return (completion.content or "").strip() or None


def render_section(summaries: list[dict[str, str]]) -> str:
    body = "\n\n---\n\n".join(
        f"### {i}. {s['title']}\n> **Source**: {s['source']} · [Original]({s['url']})\n\n{s['summary']}"
        for i, s in enumerate(summaries, start=1)
    )
    return "\n".join([
        SECTION_RULE,
        "",
        "📖 Deep summaries",
        f"({len(summaries)} articles, summarized from the original text)",
        "",
        body,
    ])


def generate_deep_summaries(
    content: str,
    items: Sequence[FetchedItem],
    http: HttpFetcher,
    client: LLMClient,
    language: str = "Chinese",
    max_workers: int = 6,
) -> str | None:
    """
    Fetch every linked article concurrently, then summarize them one by one.
    Returns the section to append, or None when nothing could be summarized.
    """
    urls = extract_urls(content)
    if not urls:
        logger.warning("Deep mode: no article links found in the digest.")
        return None

    logger.info("Deep mode: fetching %d articles...", len(urls))
    by_url = {it.url: it for it in items if it.url}

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(urls)))) as pool:
        texts = list(pool.map(lambda u: fetch_article_text(http, u), urls))

    summaries: list[dict[str, str]] = []
    for url, text in zip(urls, texts):
        item = by_url.get(url)
        title = item.title if item and item.title else url
        source = item.source_name if item and item.source_name else _host(url)

        summary = summarize_article(client, title, url, source, text, language)
        if summary:
            summaries.append({"title": title, "url": url, "source": source, "summary": summary})
            logger.info("  ✓ %s", title[:55])
        else:
            logger.info("  ✗ %s (no readable text)", title[:55])

    if not summaries:
        return None
    return render_section(summaries)
