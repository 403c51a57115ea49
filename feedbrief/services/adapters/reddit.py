from __future__ import annotations

from feedbrief.models.schemas import FetchedItem
from feedbrief.services.adapters.base import FetchContext, RedditConfig
from feedbrief.services.errors import FetchError

REDDIT_LISTING = "https://www.reddit.com/r/{sub}/{sort}.json?limit={limit}&raw_json=1"
REDDIT_UA = "feedbrief/1.0 (news aggregator bot)"


def _post_url(post: dict) -> str:
    url = post.get("url") or ""
    if url.startswith("/r/"):
        return f"https://www.reddit.com{url}"
    return url or f"https://www.reddit.com{post.get('permalink', '')}"


def fetch_reddit(config: RedditConfig, ctx: FetchContext) -> list[FetchedItem]:
    data = ctx.http.get_json(
        REDDIT_LISTING.format(sub=config.subreddit, sort=config.sort, limit=config.limit),
        headers={"User-Agent": REDDIT_UA},
        timeout=10,
    )
    if not isinstance(data, dict):
        raise FetchError("Unexpected Reddit payload")

    children = (data.get("data") or {}).get("children") or []
    items: list[FetchedItem] = []
    for child in children:
        post = child.get("data") or {}
        if not post.get("title"):
            continue
        if (post.get("score") or 0) < config.min_score:
            continue
        selftext = post.get("selftext") or ""
        description = (
            selftext[:300]
            if selftext
            else f"↑{post.get('score', 0)} · {post.get('num_comments', 0)} comments · r/{post.get('subreddit', config.subreddit)}"
        )
        created = post.get("created_utc")
        items.append(
            FetchedItem(
                title=post["title"],
                url=_post_url(post),
                description=description,
                published_at=str(created) if created else None,
                author=post.get("author"),
            )
        )
        if len(items) >= config.limit:
            break
    return items
