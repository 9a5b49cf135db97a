#!/usr/bin/env python3
"""
Tests for upstream client creation.

Usage:
  python -m unittest tests.test_client
"""

import asyncio
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from y_router.client import create_chat_completion, create_openai_client


class TestCreateOpenAIClient(unittest.TestCase):
    """The upstream client forwards the caller's key and never retries."""

    def setUp(self):
        self.mock_config = MagicMock()
        self.mock_config.openrouter_base_url = "https://openrouter.ai/api/v1"
        self.mock_config.upstream_timeout = 42.0
        self.config_patcher = patch("y_router.client.config", self.mock_config)
        self.config_patcher.start()

    def tearDown(self):
        self.config_patcher.stop()

    @patch("y_router.client.AsyncOpenAI")
    @patch("y_router.client.httpx.AsyncClient")
    def test_client_configuration(self, mock_http_client_class, mock_openai_class):
        mock_http_client = MagicMock()
        mock_http_client_class.return_value = mock_http_client
        mock_openai_client = MagicMock()
        mock_openai_class.return_value = mock_openai_client

        result = create_openai_client("sk-caller")

        mock_http_client_class.assert_called_once()
        timeout = mock_http_client_class.call_args.kwargs["timeout"]
        self.assertIsInstance(timeout, httpx.Timeout)
        self.assertEqual(timeout.read, 42.0)

        call_kwargs = mock_openai_class.call_args.kwargs
        self.assertEqual(call_kwargs["api_key"], "sk-caller")
        self.assertEqual(call_kwargs["base_url"], "https://openrouter.ai/api/v1")
        self.assertEqual(call_kwargs["max_retries"], 0)
        self.assertIs(call_kwargs["http_client"], mock_http_client)
        self.assertIs(result, mock_openai_client)

    def test_real_client_uses_caller_key(self):
        async def run_test():
            client = create_openai_client("sk-real")
            try:
                return client.api_key, str(client.base_url), client.max_retries
            finally:
                await client.close()

        api_key, base_url, max_retries = asyncio.run(run_test())

        self.assertEqual(api_key, "sk-real")
        self.assertTrue(base_url.startswith("https://openrouter.ai/api/v1"))
        self.assertEqual(max_retries, 0)


class TestCreateChatCompletion(unittest.TestCase):
    def test_forwards_request_fields(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value="completion")
        request = {"model": "m", "messages": [], "max_tokens": 16, "stream": False}

        result = asyncio.run(create_chat_completion(client, request))

        self.assertEqual(result, "completion")
        client.chat.completions.create.assert_awaited_once_with(**request)


if __name__ == "__main__":
    unittest.main()
