"""
URL / title normalization, stable hashes and the fuzzy title matcher.

Both dedup stages (before and after synthesis) and the push-history store
go through these helpers so that an item is keyed the same way everywhere.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

HASH_LENGTH = 16

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)

# keep $ and % so quantities survive normalization
_TITLE_STRIP_RE = re.compile(r"[^\w$%％]|_")
_NUMBER_RE = re.compile(r"\$[\d,.]+[kmbgt]*|\d[\d,.]*[亿万千百kmbgt%％]+", re.IGNORECASE)
_ALPHA_RUN_RE = re.compile(r"[a-z]+")


def hash_str(s: str | None) -> str:
    return hashlib.sha256((s or "").encode("utf-8")).hexdigest()[:HASH_LENGTH]


def batch_url_key(url: str | None) -> str:
    """Key used to collapse repeated URLs inside one fetched batch."""
    if not url:
        return ""
    key = _SCHEME_RE.sub("", url.strip())
    key = _WWW_RE.sub("", key)
    return key.rstrip("/").lower()


def url_hash_key(url: str | None) -> str:
    """host + path, lowercased, without scheme, www. or trailing slashes."""
    if not url:
        return ""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return batch_url_key(url)
    if not parts.netloc:
        return batch_url_key(url)
    host = _WWW_RE.sub("", (parts.hostname or parts.netloc).lower())
    return (host + parts.path).rstrip("/").lower()


def url_hash(url: str | None) -> str:
    return hash_str(url_hash_key(url))


def title_hash_key(title: str | None) -> str:
    return re.sub(r"\s+", "", title or "").lower()


def title_hash(title: str | None) -> str:
    return hash_str(title_hash_key(title))


def normalize_title(title: str | None) -> str:
    return _TITLE_STRIP_RE.sub("", (title or "").lower())


@dataclass(frozen=True)
class TitleSimilarity:
    """
    Heuristic near-duplicate test for headlines.

    Two titles match when, after normalization, one contains the other; or
    they share an entity token and a quantity token; or they share an entity
    token and are both short; or their character-bigram Jaccard overlap is
    above the threshold.
    """

    min_entity_len: int = 4
    short_title_len: int = 30
    jaccard_threshold: float = 0.35
    stopwords: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                "about", "after", "also", "back", "been", "from", "have",
                "into", "just", "more", "most", "over", "said", "says",
                "than", "that", "their", "them", "then", "they", "this",
                "what", "when", "will", "with", "your",
            }
        )
    )

    def entities(self, title: str | None) -> set[str]:
        runs = _ALPHA_RUN_RE.findall((title or "").lower())
        return {
            r for r in runs if len(r) >= self.min_entity_len and r not in self.stopwords
        }

    @staticmethod
    def quantities(normalized: str) -> set[str]:
        return {m.lower() for m in _NUMBER_RE.findall(normalized)}

    @staticmethod
    def bigrams(s: str) -> set[str]:
        return {s[i : i + 2] for i in range(len(s) - 1)}

    def __call__(self, a: str | None, b: str | None) -> bool:
        na = normalize_title(a)
        nb = normalize_title(b)
        if not na or not nb:
            return False
        if na in nb or nb in na:
            return True

        shared_entities = self.entities(a) & self.entities(b)
        if shared_entities:
            if self.quantities(na) & self.quantities(nb):
                return True
            if len(na) < self.short_title_len and len(nb) < self.short_title_len:
                return True

        ba = self.bigrams(na)
        bb = self.bigrams(nb)
        if not ba or not bb:
            return False
        inter = len(ba & bb)
        union = len(ba | bb)
        return union > 0 and inter / union > self.jaccard_threshold


titles_are_similar = TitleSimilarity()
