from __future__ import annotations

from feedbrief.models.schemas import FetchedItem
from feedbrief.services.adapters.base import FetchContext, HackerNewsConfig
from feedbrief.services.errors import FetchError

# Algolia's search API; the firebase API needs one request per story.
HN_SEARCH = "https://hn.algolia.com/api/v1/search?tags={tag}&hitsPerPage={n}"
HN_ITEM_PAGE = "https://news.ycombinator.com/item?id={id}"

_TAGS = {"top": "front_page", "new": "story", "best": "front_page", "ask": "ask_hn", "show": "show_hn"}


def fetch_hackernews(config: HackerNewsConfig, ctx: FetchContext) -> list[FetchedItem]:
    tag = _TAGS.get(config.filter, "front_page")
    data = ctx.http.get_json(
        HN_SEARCH.format(tag=tag, n=min(config.limit * 2, 60)),
        timeout=10,
    )
    if not isinstance(data, dict):
        raise FetchError("Unexpected Hacker News payload")

    items: list[FetchedItem] = []
    for hit in data.get("hits") or []:
        title = hit.get("title")
        points = hit.get("points") or 0
        if not title or points < config.min_score:
            continue
        items.append(
            FetchedItem(
                title=title,
                url=hit.get("url") or HN_ITEM_PAGE.format(id=hit.get("objectID")),
                description=f"{points} points · {hit.get('num_comments') or 0} comments",
                published_at=hit.get("created_at"),
                author=hit.get("author"),
            )
        )
        if len(items) >= config.limit:
            break
    return items
