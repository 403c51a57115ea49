"""Unit tests for the chat-completions client."""

import json
import unittest
from unittest.mock import MagicMock

import requests

from feedbrief.services.errors import SynthesisError
from feedbrief.services.http_fetch import HttpResponse
from feedbrief.services.llm_client import LLMClient

MESSAGES = [{"role": "user", "content": "hi"}]


def _client(http, **kwargs):
    opts = dict(base_url="https://llm.example/v1/", api_key="k", model="m", temperature=0.2, timeout=30, http=http)
    opts.update(kwargs)
    return LLMClient(**opts)


def _ok(content):
    body = json.dumps({"choices": [{"message": {"content": content}}]})
    return HttpResponse(status=200, body=body, headers={})


class TestLLMClient(unittest.TestCase):
    def test_request_goes_through_fetcher(self):
        http = MagicMock()
        http.post_json.return_value = _ok("  answer  ")
        completion = _client(http, max_response_bytes=1000).complete(MESSAGES, max_tokens=64)

        self.assertEqual(completion.content, "answer")
        url, payload = http.post_json.call_args.args
        self.assertEqual(url, "https://llm.example/v1/chat/completions")
        self.assertEqual(payload["max_tokens"], 64)
        self.assertEqual(payload["model"], "m")
        kwargs = http.post_json.call_args.kwargs
        self.assertEqual(kwargs["headers"], {"Authorization": "Bearer k"})
        self.assertEqual(kwargs["timeout"], 30)
        self.assertEqual(kwargs["max_bytes"], 1000)

    def test_transport_error(self):
        http = MagicMock()
        http.post_json.side_effect = requests.exceptions.ReadTimeout("slow")
        with self.assertRaises(SynthesisError):
            _client(http).complete(MESSAGES)

    def test_oversized_response(self):
        http = MagicMock()
        http.post_json.return_value = HttpResponse(status=200, body='{"choices": [', headers={}, truncated=True)
        with self.assertRaises(SynthesisError):
            _client(http).complete(MESSAGES)

    def test_non_json(self):
        http = MagicMock()
        http.post_json.return_value = HttpResponse(status=502, body="<html>bad gateway</html>", headers={})
        with self.assertRaises(SynthesisError):
            _client(http).complete(MESSAGES)

    def test_provider_error(self):
        http = MagicMock()
        http.post_json.return_value = HttpResponse(
            status=401, body='{"error": {"message": "invalid api key"}}', headers={}
        )
        completion = _client(http).complete(MESSAGES)
        self.assertIsNone(completion.content)
        self.assertEqual(completion.error, "invalid api key")

    def test_empty_answer(self):
        http = MagicMock()
        http.post_json.return_value = _ok("   ")
        completion = _client(http).complete(MESSAGES)
        self.assertIsNone(completion.content)
        self.assertIn("empty response", completion.error)


if __name__ == "__main__":
    unittest.main()
