from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from feedbrief.config.settings import get_settings
from feedbrief.services.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "feedbrief-fetcher/1.0"
DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_BYTES = 600_000
CHUNK_SIZE = 16_384

# Failures that point at the proxy hop rather than the upstream.
_PROXY_FAILURES = (
    requests.exceptions.ProxyError,
    requests.exceptions.ConnectionError,
    requests.exceptions.ConnectTimeout,
)


@dataclass
class HttpResponse:
    status: int
    body: str
    headers: dict[str, str]
    truncated: bool = False

    def json(self) -> Any:
        return json.loads(self.body)


class HttpFetcher:
    """
    Bounded HTTP client shared by the source adapters and the webhook sender.

    Every request has a timeout and (for GETs) a byte ceiling. When a proxy is
    configured and the connection through it fails, the request is retried
    exactly once without the proxy.
    """

    def __init__(
        self,
        proxy_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        session: requests.Session | None = None,
    ) -> None:
        self.proxy_url = proxy_url or ""
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "HttpFetcher":
        s = get_settings()
        return cls(proxy_url=s.proxy_url, timeout=s.fetch_timeout, max_bytes=s.fetch_max_bytes)

    def _proxies(self, use_proxy: bool) -> dict[str, str] | None:
        if use_proxy and self.proxy_url:
            return {"http": self.proxy_url, "https": self.proxy_url}
        # an explicit empty mapping would still let requests read *_PROXY env vars
        return {"http": "", "https": ""} if self.proxy_url else None

    def _with_proxy_fallback(self, attempt):
        if not self.proxy_url:
            return attempt(False)
        try:
            return attempt(True)
        except _PROXY_FAILURES as e:
            logger.info("Proxy connection failed (%s), retrying direct.", e.__class__.__name__)
            return attempt(False)

    @staticmethod
    def _read_bounded(resp: requests.Response, max_bytes: int) -> tuple[bytes, bool]:
        chunks: list[bytes] = []
        total = 0
        truncated = False
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            chunks.append(chunk)
            total += len(chunk)
            if total > max_bytes:
                truncated = True
                break
        resp.close()
        return b"".join(chunks), truncated

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> HttpResponse:
        hdrs = {"User-Agent": USER_AGENT, **(headers or {})}
        limit = max_bytes or self.max_bytes

        def attempt(use_proxy: bool) -> HttpResponse:
            resp = self.session.get(
                url,
                headers=hdrs,
                timeout=timeout or self.timeout,
                proxies=self._proxies(use_proxy),
                stream=True,
                allow_redirects=True,
            )
            raw, truncated = self._read_bounded(resp, limit)
            return HttpResponse(
                status=resp.status_code,
                body=raw.decode("utf-8", errors="replace"),
                headers=dict(resp.headers),
                truncated=truncated,
            )

        try:
            res = self._with_proxy_fallback(attempt)
        except requests.RequestException as e:
            raise FetchError(f"GET {url} failed: {e}") from e

        if res.status >= 400:
            raise FetchError(f"GET {url} returned HTTP {res.status}")
        if res.truncated:
            logger.debug("Response from %s cut at %d bytes", url, limit)
        return res

    def get_json(self, url: str, **kwargs) -> Any:
        res = self.get(url, **kwargs)
        try:
            return res.json()
        except ValueError as e:
            raise FetchError(f"GET {url} returned invalid JSON: {e}") from e

    def post_json(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        max_bytes: int | None = None,
    ) -> HttpResponse:
        """POST a JSON body; transport errors propagate as requests exceptions."""
        limit = max_bytes or self.max_bytes

        def attempt(use_proxy: bool) -> HttpResponse:
            resp = self.session.post(
                url,
                json=body,
                headers={"User-Agent": USER_AGENT, **(headers or {})},
                timeout=timeout,
                proxies=self._proxies(use_proxy),
                stream=True,
            )
            raw, truncated = self._read_bounded(resp, limit)
            return HttpResponse(
                status=resp.status_code,
                body=raw.decode("utf-8", errors="replace"),
                headers=dict(resp.headers),
                truncated=truncated,
            )

        return self._with_proxy_fallback(attempt)
