from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from feedbrief.config.settings import get_settings
from feedbrief.services.errors import SynthesisError
from feedbrief.services.http_fetch import HttpFetcher

logger = logging.getLogger(__name__)

MAX_RESPONSE_BYTES = 2_000_000


@dataclass
class Completion:
    content: str | None = None
    error: str | None = None


class LLMClient:
    """
    OpenAI-compatible chat-completions client (SiliconFlow / DeepSeek by default).

    ``complete`` raises SynthesisError only when the request itself fails;
    a provider-side error or an empty answer comes back as a Completion with
    ``error`` set so the caller can decide what to do with it.

    Requests go through the shared HttpFetcher, so they get its proxy
    fallback and a bounded response read.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: int | None = None,
        http: HttpFetcher | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
    ) -> None:
        s = get_settings()
        self.base_url = (base_url or s.llm_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else s.llm_api_key
        self.model = model or s.llm_model
        self.temperature = s.llm_temperature if temperature is None else temperature
        self.timeout = timeout or s.llm_timeout
        self.http = http or HttpFetcher.from_settings()
        self.max_response_bytes = max_response_bytes

    def complete(self, messages: list[dict[str, str]], max_tokens: int = 4096) -> Completion:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            r = self.http.post_json(
                url,
                payload,
                headers=headers,
                timeout=self.timeout,
                max_bytes=self.max_response_bytes,
            )
        except requests.RequestException as e:
            raise SynthesisError(f"LLM request failed: {e}") from e

        if r.truncated:
            raise SynthesisError(f"LLM response exceeded {self.max_response_bytes} bytes (HTTP {r.status})")

        try:
            data = r.json()
        except ValueError as e:
            raise SynthesisError(
                f"LLM returned non-JSON (HTTP {r.status}): {r.body[:300]}"
            ) from e

        if not isinstance(data, dict):
            return Completion(error=f"unexpected response shape (HTTP {r.status})")

        choices = data.get("choices") or []
        content = None
        if choices and isinstance(choices[0], dict):
            content = ((choices[0].get("message") or {}).get("content") or "").strip() or None

        if content is None:
            err = data.get("error")
            if isinstance(err, dict):
                msg = err.get("message") or err.get("msg")
            else:
                msg = err or data.get("message")
            return Completion(error=str(msg or f"empty response (HTTP {r.status})"))

        return Completion(content=content)
