"""
Upstream client management.
This module builds the OpenAI SDK client that talks to the OpenAI-compatible backend.
"""

import logging
from typing import Any

import httpx
from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletion, ChatCompletionChunk

from .config import config

logger = logging.getLogger(__name__)


def create_openai_client(api_key: str) -> AsyncOpenAI:
    """Create an OpenAI client for the configured upstream, authenticated as the caller.

    The caller's credential is forwarded as the bearer token. Retries are disabled;
    upstream failures are reported back to the caller as-is.
    """
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.upstream_timeout))

    client = AsyncOpenAI(
        api_key=api_key,
        base_url=config.openrouter_base_url,
        max_retries=0,
        http_client=http_client,
    )
    logger.debug(
        f"Create OpenAI Client: base_url={config.openrouter_base_url}, timeout={config.upstream_timeout}s"
    )
    return client


async def create_chat_completion(
    client: AsyncOpenAI, openai_request: dict[str, Any]
) -> ChatCompletion | AsyncStream[ChatCompletionChunk]:
    """Send a translated request upstream.

    Returns a ChatCompletion, or an AsyncStream of chunks when the request streams.
    Non-2xx responses raise openai.APIStatusError before any chunk is read.
    """
    logger.debug(
        f"Request for model: {openai_request.get('model')}, stream: {openai_request.get('stream', False)}"
    )
    return await client.chat.completions.create(**openai_request)
