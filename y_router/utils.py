"""
Utility functions for the y_router package.
This module contains error-detail extraction and conversion debugging helpers.
"""

import logging
import traceback
from typing import Any

logger = logging.getLogger(__name__)


def _compare_response_data(openai_response: dict[str, Any], claude_response):
    """Compare OpenAI response with converted Claude response and log differences."""
    try:
        openai_content_blocks = 0
        openai_tool_calls = 0
        openai_finish_reason = None

        choices = openai_response.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            if message.get("content"):
                openai_content_blocks = 1
            openai_tool_calls = len(message.get("tool_calls") or [])
            openai_finish_reason = choices[0].get("finish_reason")

        claude_content_blocks = len(claude_response.content)
        claude_tool_use_blocks = sum(
            1 for block in claude_response.content if block.type == "tool_use"
        )

        logger.debug("RESPONSE CONVERSION COMPARISON:")
        logger.debug(
            f"  OpenAI -> Claude Content Blocks: {openai_content_blocks} -> {claude_content_blocks}"
        )
        logger.debug(
            f"  OpenAI -> Claude Tool Calls/Use: {openai_tool_calls} -> {claude_tool_use_blocks}"
        )
        logger.debug(
            f"  OpenAI -> Claude Finish/Stop Reason: {openai_finish_reason} -> {claude_response.stop_reason}"
        )

    except Exception as e:
        logger.warning(f"Error in response data comparison: {e}")


def _debug_openai_message_sequence(openai_messages: list, context: str):
    """Debug and validate OpenAI message sequence for tool call ordering."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    try:
        logger.debug(
            f"🔍 DEBUG_MESSAGE_SEQUENCE [{context}]: {len(openai_messages)} messages"
        )

        seen_call_ids = set()
        for i, msg in enumerate(openai_messages):
            role = msg.get("role", "unknown")
            tool_calls = msg.get("tool_calls") or []
            content_preview = (
                str(msg.get("content"))[:50] + "..." if msg.get("content") else "None"
            )

            logger.debug(
                f"🔍   Message {i}: role={role}, tool_calls={len(tool_calls)}, content={content_preview}"
            )

            for tool_call in tool_calls:
                seen_call_ids.add(tool_call.get("id"))
                logger.debug(
                    f"🔍     Call {tool_call.get('id')}: {tool_call.get('function', {}).get('name', 'unknown')}"
                )

            if role == "tool":
                tool_call_id = msg.get("tool_call_id", "unknown")
                if tool_call_id not in seen_call_ids:
                    logger.debug(
                        f"🔍     Tool result for {tool_call_id} has no earlier tool call"
                    )
                else:
                    logger.debug(f"🔍     Tool result for: {tool_call_id}")

    except Exception as e:
        logger.warning(f"Error in debug message sequence: {e}")


def _compare_request_data(claude_request, openai_request: dict[str, Any]):
    """Compare Claude request with converted OpenAI request and log differences."""
    try:
        claude_messages = len(claude_request.messages)
        claude_tools = len(claude_request.tools) if claude_request.tools else 0

        openai_messages = len(openai_request.get("messages", []))
        openai_tools = len(openai_request.get("tools", []))

        logger.debug("REQUEST CONVERSION COMPARISON:")
        logger.debug(
            f"  Claude -> OpenAI Messages: {claude_messages} -> {openai_messages}"
        )
        logger.debug(f"  Claude -> OpenAI Tools: {claude_tools} -> {openai_tools}")

        if openai_messages > claude_messages:
            logger.debug(
                f"  Message expansion detected: +{openai_messages - claude_messages} messages (system prompt or tool_result splitting)"
            )

    except Exception as e:
        logger.warning(f"Error in request data comparison: {e}")


def _extract_error_details(e: Exception) -> dict[str, Any]:
    """Extract error details from an exception, ensuring all values are JSON serializable."""
    error_details = {
        "error": str(e),
        "type": type(e).__name__,
        "traceback": traceback.format_exc(),
    }

    # Combine attributes from the exception's dict and common API error attributes
    attrs_to_check = list(getattr(e, "__dict__", {}).keys())
    attrs_to_check.extend(["message", "status_code", "response", "code", "param", "body"])
    attrs_to_check = sorted(set(attrs_to_check))

    for attr in attrs_to_check:
        if (
            hasattr(e, attr)
            and attr not in error_details
            and attr not in ["args", "__traceback__", "request"]
        ):
            value = getattr(e, attr)

            if attr == "response":
                # httpx responses are not JSON serializable, keep their body text
                if hasattr(value, "text"):
                    error_details[attr] = value.text
                else:
                    error_details[attr] = str(value)
            elif isinstance(value, (str, int, float, bool, list, dict, type(None))):
                error_details[attr] = value
            else:
                error_details[attr] = str(value)

    return error_details


def _format_error_message(e: Exception, error_details: dict[str, Any]) -> str:
    """Format error message for response."""
    error_message = f"Error: {str(e)}"
    if error_details.get("message") and error_details["message"] != str(e):
        error_message += f"\nMessage: {error_details['message']}"
    if error_details.get("response"):
        error_message += f"\nResponse: {error_details['response']}"
    return error_message
