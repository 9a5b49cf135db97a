"""
Format conversion functions between Anthropic and OpenAI APIs.
This module handles the request and non-streaming response translation.
"""

import json
import logging
from typing import Any

from openai.types.chat import ChatCompletion

from .types import (
    ClaudeContentBlockText,
    ClaudeContentBlockToolUse,
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeUsage,
    Constants,
    generate_unique_id,
    map_finish_reason_to_stop_reason,
)

logger = logging.getLogger(__name__)


class TranslationError(ValueError):
    """Raised when an upstream payload does not have the shape the translator expects."""


def as_plain_dict(payload: Any, what: str) -> dict[str, Any]:
    """Normalize an OpenAI SDK model or a decoded JSON object into a plain dict."""
    if isinstance(payload, dict):
        return payload
    if hasattr(payload, "model_dump"):
        return payload.model_dump()
    raise TranslationError(f"Unexpected {what} type: {type(payload).__name__}")


def convert_anthropic_request_to_openai(request: ClaudeMessagesRequest) -> dict[str, Any]:
    """Convert an Anthropic Messages request into an OpenAI Chat Completions request."""
    logger.debug(f"🔄 Converting Claude request to OpenAI format for model: {request.model}")

    openai_request = request.to_openai_request()

    from .utils import _compare_request_data, _debug_openai_message_sequence

    _debug_openai_message_sequence(openai_request["messages"], "claude_to_openai_conversion")
    _compare_request_data(request, openai_request)

    return openai_request


def parse_tool_arguments(arguments_str: str | None) -> dict[str, Any] | str:
    """Parse a tool-call argument string back into a JSON object.

    An empty string means no arguments. Anything that does not decode to a JSON
    object is returned unchanged so the caller still sees what the model produced.
    """
    if not arguments_str:
        return {}
    try:
        parsed = json.loads(arguments_str)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Failed to parse tool arguments, passing raw string: {arguments_str!r}")
        return arguments_str
    if not isinstance(parsed, dict):
        logger.warning(f"Tool arguments are not a JSON object, passing raw string: {arguments_str!r}")
        return arguments_str
    return parsed


def extract_usage_from_openai_response(usage: dict[str, Any] | None) -> ClaudeUsage:
    """Rename OpenAI usage counters to their Anthropic names, without rescaling."""
    if not usage:
        return ClaudeUsage(input_tokens=0, output_tokens=0)
    return ClaudeUsage(
        input_tokens=usage.get("prompt_tokens") or 0,
        output_tokens=usage.get("completion_tokens") or 0,
    )


def _message_text(content: Any) -> str:
    """Reduce upstream message content to text; some backends send a list of parts."""
    if content is None or isinstance(content, str):
        return content or ""
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                texts.append(part["text"])
            else:
                logger.debug(f"Dropping non-text content part: {part!r}")
        return "".join(texts)
    raise TranslationError(f"Unexpected message content: {content!r}")


def _tool_call_to_block(tool_call: dict[str, Any]) -> ClaudeContentBlockToolUse:
    function = tool_call.get("function") or {}
    tool_id = tool_call.get("id")
    if not tool_id:
        tool_id = generate_unique_id("toolu")
        logger.warning(f"Upstream tool call has no id, generated {tool_id}")
    return ClaudeContentBlockToolUse(
        type=Constants.CONTENT_TOOL_USE,
        id=tool_id,
        name=function.get("name") or "",
        input=parse_tool_arguments(function.get("arguments")),
    )


def convert_openai_response_to_anthropic(
    openai_response: ChatCompletion | dict[str, Any],
    original_request: ClaudeMessagesRequest,
) -> ClaudeMessagesResponse:
    """Convert a non-streaming OpenAI response back to Anthropic API format."""
    response = as_plain_dict(openai_response, "response")

    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        upstream_error = response.get("error")
        if upstream_error:
            raise TranslationError(f"Upstream returned an error: {upstream_error}")
        raise TranslationError("Upstream response has no choices")

    content_blocks: list[ClaudeContentBlockText | ClaudeContentBlockToolUse] = []
    finish_reason = None

    for choice in choices:
        if not isinstance(choice, dict):
            raise TranslationError(f"Unexpected response choice: {choice!r}")
        message = choice.get("message") or {}

        content_text = _message_text(message.get("content"))
        if content_text:
            content_blocks.append(
                ClaudeContentBlockText(type=Constants.CONTENT_TEXT, text=content_text)
            )

        for tool_call in message.get("tool_calls") or []:
            content_blocks.append(_tool_call_to_block(tool_call))

        if finish_reason is None:
            finish_reason = choice.get("finish_reason")

    stop_reason = map_finish_reason_to_stop_reason(finish_reason)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Creating Claude response with {len(content_blocks)} content blocks:")
        for i, block in enumerate(content_blocks):
            if block.type == Constants.CONTENT_TEXT:
                logger.debug(f"  Block {i}: text {block.text[:200]!r}")
            else:
                logger.debug(f"  Block {i}: tool_use {block.name} ({block.id})")

    claude_response = ClaudeMessagesResponse(
        id=response.get("id") or generate_unique_id("msg"),
        model=response.get("model") or original_request.model,
        role=Constants.ROLE_ASSISTANT,
        content=content_blocks,
        stop_reason=stop_reason,
        stop_sequence=None,
        usage=extract_usage_from_openai_response(response.get("usage")),
    )

    from .utils import _compare_response_data

    _compare_response_data(response, claude_response)

    return claude_response
