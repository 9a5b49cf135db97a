#!/usr/bin/env python3
"""
Test suite for the y-router HTTP surface.

Exercises the FastAPI app with TestClient and a patched upstream client:
credential checks, request validation, body limits, static routes, and the
JSON and SSE paths of /v1/messages including upstream error relaying.

Usage:
  python tests/test_server.py                    # Run all tests
  python -m unittest tests.test_server           # Run with unittest module
"""

import json
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import openai
from fastapi.testclient import TestClient
from openai.types.chat import ChatCompletion

from y_router.config import config
from y_router.server import app

UPSTREAM_URL = "https://openrouter.ai/api/v1/chat/completions"

BASIC_REQUEST = {
    "model": "moonshotai/kimi-k2",
    "max_tokens": 16,
    "messages": [{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
}


class MockUpstreamStream:
    """Stands in for openai.AsyncStream: async iteration plus an async close()."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.chunks:
            raise StopAsyncIteration
        item = self.chunks.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


def make_completion(content="Hello there", finish_reason="stop"):
    return ChatCompletion.model_validate(
        {
            "id": "gen-123",
            "object": "chat.completion",
            "created": 1700000000,
            "model": "moonshotai/kimi-k2",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
        }
    )


def stream_chunk(content=None, finish_reason=None):
    delta = {"content": content} if content is not None else {}
    return {
        "id": "gen-456",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def parse_sse(body: str):
    events = []
    for frame in body.split("\n\n"):
        if not frame.strip():
            continue
        header, data = frame.split("\n", 1)
        events.append((header[len("event: "):], json.loads(data[len("data: "):])))
    return events


class ServerTestCase(unittest.TestCase):
    def setUp(self):
        self.mock_client = MagicMock()
        self.mock_client.chat.completions.create = AsyncMock()
        self.mock_client.close = AsyncMock()

        self.client_patcher = patch(
            "y_router.server.create_openai_client", return_value=self.mock_client
        )
        self.mock_create_client = self.client_patcher.start()
        self.http = TestClient(app)

    def tearDown(self):
        self.client_patcher.stop()

    def post_messages(self, payload=None, api_key="sk-test", **kwargs):
        headers = {"x-api-key": api_key} if api_key else {}
        return self.http.post(
            "/v1/messages", json=payload if payload is not None else BASIC_REQUEST,
            headers=headers, **kwargs
        )


class TestStaticRoutes(ServerTestCase):
    def test_health(self):
        response = self.http.get("/health")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIn("timestamp", body)

    def test_pages(self):
        for path in ("/", "/terms", "/privacy"):
            with self.subTest(path=path):
                response = self.http.get(path)
                self.assertEqual(response.status_code, 200)
                self.assertTrue(response.headers["content-type"].startswith("text/html"))
                self.assertIn("<html", response.text)

    def test_install_script(self):
        response = self.http.get("/install.sh")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "text/plain; charset=utf-8")
        self.assertTrue(response.text.startswith("#!/usr/bin/env bash"))
        self.assertIn("ANTHROPIC_BASE_URL", response.text)

    def test_unknown_route_is_plain_404(self):
        response = self.http.get("/does/not/exist")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "Not Found")

    def test_cors_preflight(self):
        response = self.http.options(
            "/v1/messages",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "x-api-key, content-type",
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "*")


class TestMessagesValidation(ServerTestCase):
    def test_missing_api_key(self):
        response = self.post_messages(api_key=None)

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Missing x-api-key header"})
        self.mock_create_client.assert_not_called()

    def test_invalid_request_body(self):
        response = self.post_messages({"model": "m", "messages": []})

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["type"], "error")
        self.assertEqual(body["error"]["type"], "invalid_request_error")
        self.mock_create_client.assert_not_called()

    def test_malformed_json(self):
        response = self.http.post(
            "/v1/messages",
            content=b"{not json",
            headers={"x-api-key": "sk-test", "content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["type"], "invalid_request_error")

    def test_body_too_large(self):
        with patch.object(config, "max_body_size", 64):
            response = self.post_messages(
                {**BASIC_REQUEST, "system": "x" * 500}
            )

        self.assertEqual(response.status_code, 413)
        self.mock_create_client.assert_not_called()


class TestMessagesNonStreaming(ServerTestCase):
    def test_translated_response(self):
        self.mock_client.chat.completions.create.return_value = make_completion()

        response = self.post_messages()

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["id"], "gen-123")
        self.assertEqual(body["type"], "message")
        self.assertEqual(body["role"], "assistant")
        self.assertEqual(body["content"], [{"type": "text", "text": "Hello there"}])
        self.assertEqual(body["stop_reason"], "end_turn")
        self.assertEqual(body["usage"], {"input_tokens": 3, "output_tokens": 2})

        self.mock_create_client.assert_called_once_with("sk-test")
        self.mock_client.chat.completions.create.assert_awaited_once_with(
            model="moonshotai/kimi-k2",
            messages=[{"role": "user", "content": "hi"}],
            max_tokens=16,
            stream=False,
        )
        self.mock_client.close.assert_awaited()

    def test_upstream_status_is_relayed(self):
        upstream_body = {"error": {"message": "Rate limited", "code": 429}}
        upstream_response = httpx.Response(
            429, json=upstream_body, request=httpx.Request("POST", UPSTREAM_URL)
        )
        self.mock_client.chat.completions.create.side_effect = openai.RateLimitError(
            "Rate limited", response=upstream_response, body=upstream_body
        )

        response = self.post_messages()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json(), upstream_body)
        self.mock_client.close.assert_awaited()

    def test_upstream_unauthorized_is_relayed(self):
        upstream_response = httpx.Response(
            401, text="No auth credentials found", request=httpx.Request("POST", UPSTREAM_URL)
        )
        self.mock_client.chat.completions.create.side_effect = openai.AuthenticationError(
            "No auth credentials found", response=upstream_response, body=None
        )

        response = self.post_messages()

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.text, "No auth credentials found")

    def test_upstream_connection_error(self):
        self.mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", UPSTREAM_URL)
        )

        response = self.post_messages()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["type"], "error")

    def test_upstream_timeout(self):
        self.mock_client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", UPSTREAM_URL)
        )

        response = self.post_messages()

        self.assertEqual(response.status_code, 504)

    def test_unexpected_upstream_shape(self):
        self.mock_client.chat.completions.create.return_value = {
            "error": {"message": "provider returned error"}
        }

        response = self.post_messages()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"]["type"], "api_error")
        self.mock_client.close.assert_awaited()

    def test_list_content_is_translated(self):
        completion = make_completion().model_dump()
        completion["choices"][0]["message"]["content"] = [{"type": "text", "text": "hi"}]
        self.mock_client.chat.completions.create.return_value = completion

        response = self.post_messages()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["content"], [{"type": "text", "text": "hi"}])

    def test_unexpected_content_type_is_bad_gateway(self):
        completion = make_completion().model_dump()
        completion["choices"][0]["message"]["content"] = 42
        self.mock_client.chat.completions.create.return_value = completion

        response = self.post_messages()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"]["type"], "api_error")
        self.mock_client.close.assert_awaited()

    def test_unexpected_failure_is_internal_error(self):
        self.mock_client.chat.completions.create.side_effect = RuntimeError("boom")

        response = self.post_messages()

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal server error"})


class TestMessagesStreaming(ServerTestCase):
    def test_streaming_events(self):
        upstream = MockUpstreamStream(
            [stream_chunk("He"), stream_chunk("llo"), stream_chunk(finish_reason="stop")]
        )
        self.mock_client.chat.completions.create.return_value = upstream

        response = self.post_messages({**BASIC_REQUEST, "stream": True})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(response.headers["cache-control"], "no-cache")

        events = parse_sse(response.text)
        self.assertEqual(
            [name for name, _ in events],
            [
                "message_start",
                "content_block_start",
                "content_block_delta",
                "content_block_delta",
                "content_block_stop",
                "message_delta",
                "message_stop",
            ],
        )
        for name, data in events:
            self.assertEqual(name, data["type"])
        self.assertEqual(events[0][1]["message"]["model"], "moonshotai/kimi-k2")
        self.assertEqual(
            "".join(data["delta"]["text"] for name, data in events if name == "content_block_delta"),
            "Hello",
        )
        self.assertEqual(events[5][1]["delta"]["stop_reason"], "end_turn")

        self.assertTrue(self.mock_client.chat.completions.create.call_args.kwargs["stream"])
        self.assertTrue(upstream.closed)
        self.mock_client.close.assert_awaited()

    def test_mid_stream_failure_becomes_error_event(self):
        upstream = MockUpstreamStream(
            [stream_chunk("partial"), openai.APIConnectionError(request=httpx.Request("POST", UPSTREAM_URL))]
        )
        self.mock_client.chat.completions.create.return_value = upstream

        response = self.post_messages({**BASIC_REQUEST, "stream": True})

        self.assertEqual(response.status_code, 200)
        events = parse_sse(response.text)
        self.assertEqual(events[0][0], "message_start")
        self.assertEqual(events[-1][0], "error")
        self.assertEqual(events[-1][1]["error"]["type"], "api_error")
        self.assertNotIn("message_stop", [name for name, _ in events])
        self.assertTrue(upstream.closed)
        self.mock_client.close.assert_awaited()

    def test_in_band_error_chunk_becomes_error_event(self):
        upstream = MockUpstreamStream(
            [stream_chunk("partial"), {"error": {"message": "provider failed", "code": 502}}]
        )
        self.mock_client.chat.completions.create.return_value = upstream

        response = self.post_messages({**BASIC_REQUEST, "stream": True})

        events = parse_sse(response.text)
        self.assertEqual(events[-1][0], "error")
        self.assertIn("provider failed", events[-1][1]["error"]["message"])
        self.assertNotIn("message_stop", [name for name, _ in events])
        self.assertTrue(upstream.closed)

    def test_stream_open_failure_relays_status(self):
        upstream_response = httpx.Response(
            400, json={"error": {"message": "bad model"}}, request=httpx.Request("POST", UPSTREAM_URL)
        )
        self.mock_client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad model", response=upstream_response, body={"error": {"message": "bad model"}}
        )

        response = self.post_messages({**BASIC_REQUEST, "stream": True})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": {"message": "bad model"}})


if __name__ == "__main__":
    unittest.main()
