"""
GitHub trending adapter.

There is no API for the trending page, so repositories are scraped from the
rendered listing: one ``article.Box-row`` per repository, with the repo link
in its heading, an optional description paragraph and a "stars today"
counter.
"""
from __future__ import annotations

import re
from urllib.parse import quote

from bs4 import BeautifulSoup

from feedbrief.models.schemas import FetchedItem
from feedbrief.services.adapters.base import FetchContext, GitHubTrendingConfig

TRENDING_URL = "https://github.com/trending{lang}?since={since}"
RESULT_LIMIT = 20

_REPO_PATH_RE = re.compile(r"^/([A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+)/?$")
_STARS_RE = re.compile(r"(\d[\d,]*)\s*stars today", re.IGNORECASE)


def _repo_name(row) -> str | None:
    for a in row.select("h2 a[href], h1 a[href]"):
        m = _REPO_PATH_RE.match(a["href"].strip())
        if m and not m.group(1).startswith(("login/", "trending/")):
            return m.group(1)
    return None


def parse_trending(body: str) -> list[FetchedItem]:
    soup = BeautifulSoup(body or "", "html.parser")
    items: list[FetchedItem] = []
    seen: set[str] = set()
    for row in soup.select("article.Box-row"):
        repo = _repo_name(row)
        if not repo or repo in seen:
            continue
        seen.add(repo)

        p = row.find("p")
        desc = " ".join(p.get_text(separator=" ").split()) if p else ""
        stars_node = row.find(string=_STARS_RE)
        stars = _STARS_RE.search(stars_node).group(1).replace(",", "") if stars_node else ""

        parts = [desc, f"⭐ {stars} stars today" if stars else ""]
        items.append(
            FetchedItem(
                title=repo,
                url=f"https://github.com/{repo}",
                description=" · ".join(part for part in parts if part),
            )
        )
        if len(items) >= RESULT_LIMIT:
            break
    return items


def fetch_github_trending(config: GitHubTrendingConfig, ctx: FetchContext) -> list[FetchedItem]:
    lang = config.language.strip()
    lang_path = f"/{quote(lang)}" if lang and lang.lower() != "all" else ""
    res = ctx.http.get(TRENDING_URL.format(lang=lang_path, since=config.since), timeout=12)
    return parse_trending(res.body)
