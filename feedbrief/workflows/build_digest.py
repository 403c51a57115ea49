from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from feedbrief.models.schemas import SynthesizedItem

TYPE_LABELS = {"4h": "4-hour brief", "daily": "Daily brief", "weekly": "Weekly brief", "monthly": "Monthly brief"}
TYPE_ICONS = {"4h": "☀️", "daily": "📰", "weekly": "📅", "monthly": "📊"}

HOT_HEADING = "🔥 High priority"
OTHER_HEADING = "📰 Highlights"


def format_date_str(now: datetime | None = None, tz_name: str = "Asia/Shanghai") -> str:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    local = now.astimezone(tz)
    return f"{local.strftime('%Y-%m-%d %H:%M')} {local.tzname() or ''}".strip()


def _bullet(item: SynthesizedItem) -> str:
    return f"• [{item.title}] — {item.summary} [link]({item.url})"


def render_markdown(items: list[SynthesizedItem], digest_type: str, date_str: str) -> str:
    """
    Markdown body stored with the digest: a header line, then the
    high-priority section, then everything else.
    """
    hot = [it for it in items if it.is_high_priority]
    other = [it for it in items if not it.is_high_priority]

    lines: list[str] = [f"{TYPE_ICONS.get(digest_type, '☀️')} {TYPE_LABELS.get(digest_type, 'Brief')} | {date_str}", ""]
    if hot:
        lines.append(HOT_HEADING)
        lines.extend(_bullet(it) for it in hot)
        lines.append("")
    if other:
        lines.append(OTHER_HEADING)
        lines.extend(_bullet(it) for it in other)
    return "\n".join(lines).strip() + "\n"
