"""
Streaming response processing for OpenAI to Anthropic API conversion.
This module contains the AnthropicStreamingConverter state machine and the async
drivers that turn an upstream chunk stream into Anthropic server-sent events.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any

from openai.types.chat import ChatCompletionChunk

from .converter import TranslationError, as_plain_dict
from .types import (
    ClaudeMessagesRequest,
    Constants,
    generate_unique_id,
    map_finish_reason_to_stop_reason,
)

logger = logging.getLogger(__name__)


class BlockState(Enum):
    """Which content block, if any, is currently open on the Anthropic side."""

    IDLE = "idle"
    TEXT_OPEN = "text_open"
    TOOL_OPEN = "tool_open"
    # finish_reason seen, waiting for trailing usage before message_delta
    FINISHING = "finishing"
    FINISHED = "finished"


@dataclass
class ToolCallBuffer:
    """Argument text accumulated for one upstream tool call, keyed by its call index."""

    call_index: int
    id: str
    name: str
    block_index: int
    arguments: str = ""
    # Id as sent by upstream; None while the emitted id is a generated placeholder
    upstream_id: str | None = None


def format_sse_event(event: dict[str, Any]) -> str:
    """Frame an Anthropic event as a server-sent event."""
    return f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n"


class AnthropicStreamingConverter:
    """Encapsulates state and logic for converting OpenAI streaming chunks to Anthropic events.

    One instance serves exactly one in-flight response. Every block transition goes
    through ``_close_open_block`` and ``_open_block``, which keep block indices
    monotonic and every start paired with exactly one stop.
    """

    def __init__(self, original_request: ClaudeMessagesRequest):
        self.original_request = original_request
        self.model = original_request.model
        self.message_id: str | None = None
        self.message_started = False

        # Block state tracking
        self.state = BlockState.IDLE
        self.open_block_index: int | None = None
        self.next_block_index = 0

        # Tool call state, only the open call keeps a buffer
        self.tool_buffers: dict[int, ToolCallBuffer] = {}
        self.open_tool_index: int | None = None
        self.closed_tool_ids: dict[int, str] = {}
        self.saw_tool_use = False

        # Response state
        self.pending_stop_reason: str | None = None
        self.usage_received = False
        self.input_tokens: int | None = None
        self.output_tokens = 0

        # Summary counters for the completion log
        self.openai_chunks_received = 0
        self.text_chars = 0
        self.tool_calls_summary: list[dict[str, Any]] = []

    @property
    def finished(self) -> bool:
        return self.state is BlockState.FINISHED

    # === Event builders ===

    def _message_start_event(self) -> dict[str, Any]:
        logger.debug(
            f"STREAMING_EVENT: message_start - message_id: {self.message_id}, model: {self.model}"
        )
        return {
            "type": Constants.EVENT_MESSAGE_START,
            "message": {
                "id": self.message_id,
                "type": "message",
                "role": "assistant",
                "model": self.model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {"input_tokens": 0, "output_tokens": 0},
            },
        }

    def _content_block_start_event(self, index: int, content_block: dict[str, Any]) -> dict[str, Any]:
        logger.debug(
            f"STREAMING_EVENT: content_block_start - index: {index}, block_type: {content_block['type']}"
        )
        return {
            "type": Constants.EVENT_CONTENT_BLOCK_START,
            "index": index,
            "content_block": content_block,
        }

    def _content_block_delta_event(self, delta_type: str, content: str) -> dict[str, Any]:
        delta = {"type": delta_type}
        if delta_type == Constants.DELTA_TEXT:
            delta["text"] = content
        else:
            delta["partial_json"] = content
        logger.debug(
            f"STREAMING_EVENT: content_block_delta - index: {self.open_block_index}, delta_type: {delta_type}, content_len: {len(content)}"
        )
        return {
            "type": Constants.EVENT_CONTENT_BLOCK_DELTA,
            "index": self.open_block_index,
            "delta": delta,
        }

    def _content_block_stop_event(self, index: int) -> dict[str, Any]:
        logger.debug(f"STREAMING_EVENT: content_block_stop - index: {index}")
        return {"type": Constants.EVENT_CONTENT_BLOCK_STOP, "index": index}

    def _message_delta_event(self) -> dict[str, Any]:
        usage = {"output_tokens": self.output_tokens}
        if self.input_tokens is not None:
            usage["input_tokens"] = self.input_tokens
        logger.debug(
            f"STREAMING_EVENT: message_delta - stop_reason: {self.pending_stop_reason}, usage: {usage}"
        )
        return {
            "type": Constants.EVENT_MESSAGE_DELTA,
            "delta": {"stop_reason": self.pending_stop_reason, "stop_sequence": None},
            "usage": usage,
        }

    def _message_stop_event(self) -> dict[str, Any]:
        logger.debug("STREAMING_EVENT: message_stop")
        return {"type": Constants.EVENT_MESSAGE_STOP}

    # === Block grammar ===

    def _start_message(self, chunk: dict[str, Any]) -> dict[str, Any]:
        self.message_id = chunk.get("id") or generate_unique_id("msg")
        self.message_started = True
        return self._message_start_event()

    def _open_block(self, state: BlockState, content_block: dict[str, Any]) -> dict[str, Any]:
        if self.state is not BlockState.IDLE:
            raise RuntimeError(f"Cannot open a content block while {self.state.value}")
        index = self.next_block_index
        self.next_block_index += 1
        self.open_block_index = index
        self.state = state
        return self._content_block_start_event(index, content_block)

    def _close_open_block(self) -> list[dict[str, Any]]:
        if self.state not in (BlockState.TEXT_OPEN, BlockState.TOOL_OPEN):
            return []

        if self.state is BlockState.TOOL_OPEN:
            self._release_tool_buffer(self.open_tool_index)
            self.open_tool_index = None

        event = self._content_block_stop_event(self.open_block_index)
        self.open_block_index = None
        self.state = BlockState.IDLE
        return [event]

    def _release_tool_buffer(self, call_index: int) -> None:
        buffer = self.tool_buffers.pop(call_index)
        self.closed_tool_ids[call_index] = buffer.upstream_id or buffer.id

        try:
            parsed = json.loads(buffer.arguments) if buffer.arguments else {}
        except json.JSONDecodeError:
            parsed = None
            logger.warning(
                f"🔧 Streamed tool call {buffer.name} ({buffer.id}) arguments are not valid JSON: {buffer.arguments[:200]!r}"
            )

        self.tool_calls_summary.append(
            {
                "name": buffer.name,
                "id": buffer.id,
                "input_keys": list(parsed) if isinstance(parsed, dict) else None,
                "argument_chars": len(buffer.arguments),
            }
        )

    # === Fragment handlers ===

    def _handle_text_delta(self, text: str) -> list[dict[str, Any]]:
        events = []
        if self.state is not BlockState.TEXT_OPEN:
            events.extend(self._close_open_block())
            events.append(self._open_block(BlockState.TEXT_OPEN, {"type": "text", "text": ""}))

        self.text_chars += len(text)
        events.append(self._content_block_delta_event(Constants.DELTA_TEXT, text))
        return events

    def _handle_tool_call_delta(self, tool_call: Any) -> list[dict[str, Any]]:
        tool_call = as_plain_dict(tool_call, "tool call delta")

        call_index = tool_call.get("index")
        if call_index is None:
            logger.warning("🔧 TOOL_CALL_DELTA: Missing tool call index, defaulting to 0")
            call_index = 0

        function = tool_call.get("function") or {}
        call_id = tool_call.get("id")
        arguments = function.get("arguments") or ""

        is_current = self.state is BlockState.TOOL_OPEN and self.open_tool_index == call_index
        if is_current and call_id:
            buffer = self.tool_buffers[call_index]
            if buffer.upstream_id is None:
                # The block already went out under the generated id, keep using it
                buffer.upstream_id = call_id
                logger.debug(
                    f"🔧 TOOL_CALL_DELTA: Upstream id {call_id} arrived late for block {buffer.id}"
                )
            elif call_id != buffer.upstream_id:
                # Same index reused for a different call
                is_current = False

        events = []
        if not is_current:
            closed_id = self.closed_tool_ids.get(call_index)
            if closed_id is not None and call_id in (None, "", closed_id):
                logger.warning(
                    f"🔧 TOOL_CALL_DELTA: Dropping late fragment for closed tool call index {call_index}"
                )
                return []
            events.extend(self._close_open_block())
            events.append(self._start_tool_call(call_index, call_id, function.get("name")))

        if arguments:
            buffer = self.tool_buffers[call_index]
            buffer.arguments += arguments
            events.append(self._content_block_delta_event(Constants.DELTA_INPUT_JSON, arguments))
        return events

    def _start_tool_call(self, call_index: int, call_id: str | None, name: str | None) -> dict[str, Any]:
        upstream_id = call_id or None
        if not call_id:
            call_id = generate_unique_id("toolu")
            logger.warning(
                f"🔧 TOOL_CALL_DELTA: Tool call index {call_index} has no id, generated {call_id}"
            )
        if not name:
            logger.warning(f"🔧 TOOL_CALL_DELTA: Tool call {call_id} has no function name")
            name = ""

        self.closed_tool_ids.pop(call_index, None)
        self.saw_tool_use = True
        event = self._open_block(
            BlockState.TOOL_OPEN,
            {"type": "tool_use", "id": call_id, "name": name, "input": {}},
        )
        self.open_tool_index = call_index
        self.tool_buffers[call_index] = ToolCallBuffer(
            call_index=call_index,
            id=call_id,
            name=name,
            block_index=self.open_block_index,
            upstream_id=upstream_id,
        )
        logger.debug(
            f"🔧 TOOL_CALL_DELTA: Started tool call - index: {call_index}, name: {name}, id: {call_id}, block_index: {self.open_block_index}"
        )
        return event

    def _handle_finish(self, finish_reason: str) -> list[dict[str, Any]]:
        events = self._close_open_block()
        self.pending_stop_reason = map_finish_reason_to_stop_reason(finish_reason)
        self.state = BlockState.FINISHING
        logger.debug(f"🔚 finish_reason={finish_reason} -> stop_reason={self.pending_stop_reason}")
        return events

    def _record_usage(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        self.usage_received = True
        if usage.get("prompt_tokens") is not None:
            self.input_tokens = usage["prompt_tokens"]
        if usage.get("completion_tokens") is not None:
            self.output_tokens = usage["completion_tokens"]
        logger.debug(
            f"Usage chunk received - Input: {self.input_tokens}, Output: {self.output_tokens}"
        )

    def _finalize(self) -> list[dict[str, Any]]:
        if self.state is BlockState.FINISHED:
            return []

        events = []
        if self.state is not BlockState.FINISHING:
            # Upstream ended without a finish_reason
            events.extend(self._close_open_block())
            self.pending_stop_reason = (
                Constants.STOP_TOOL_USE if self.saw_tool_use else Constants.STOP_END_TURN
            )

        events.append(self._message_delta_event())
        events.append(self._message_stop_event())
        self.state = BlockState.FINISHED
        return events

    # === Public API ===

    def process_chunk(self, chunk: ChatCompletionChunk | dict[str, Any]) -> list[dict[str, Any]]:
        """Process a single upstream chunk and return the Anthropic events it causes."""
        if self.finished:
            logger.debug("Ignoring chunk received after message_stop")
            return []

        chunk = as_plain_dict(chunk, "chunk")
        self.openai_chunks_received += 1

        if chunk.get("error"):
            raise TranslationError(f"Upstream returned an error mid-stream: {chunk['error']}")

        choices = chunk.get("choices") or []
        if not isinstance(choices, list):
            raise TranslationError(f"Unexpected chunk choices: {choices!r}")

        events = []
        if not self.message_started:
            events.append(self._start_message(chunk))

        self._record_usage(chunk.get("usage"))

        if self.state is not BlockState.FINISHING:
            for choice in choices:
                if not isinstance(choice, dict):
                    raise TranslationError(f"Unexpected chunk choice: {choice!r}")
                delta = choice.get("delta") or {}

                if delta.get("content"):
                    events.extend(self._handle_text_delta(delta["content"]))

                for tool_call in delta.get("tool_calls") or []:
                    events.extend(self._handle_tool_call_delta(tool_call))

                if choice.get("finish_reason"):
                    events.extend(self._handle_finish(choice["finish_reason"]))
                    break

        if self.state is BlockState.FINISHING and self.usage_received:
            events.extend(self._finalize())
        return events

    def finish(self) -> list[dict[str, Any]]:
        """Close out the stream once the upstream has ended."""
        events = []
        if not self.message_started:
            events.append(self._start_message({}))
        events.extend(self._finalize())
        return events


async def _close_upstream(response_generator: Any) -> None:
    if hasattr(response_generator, "close"):
        await response_generator.close()
    elif hasattr(response_generator, "aclose"):
        await response_generator.aclose()


async def stream_anthropic_events(
    response_generator: AsyncIterable[ChatCompletionChunk | dict[str, Any]],
    original_request: ClaudeMessagesRequest,
) -> AsyncIterator[dict[str, Any]]:
    """Pull upstream chunks one at a time and yield the Anthropic events they produce."""
    converter = AnthropicStreamingConverter(original_request)
    completed = False

    try:
        logger.debug(f"🌊 Starting streaming for model: {original_request.model}")

        async for chunk in response_generator:
            for event in converter.process_chunk(chunk):
                yield event
            if converter.finished:
                break

        for event in converter.finish():
            yield event
        completed = True

    finally:
        await _close_upstream(response_generator)
        _log_streaming_completion(converter, completed)


async def convert_openai_streaming_response_to_anthropic(
    response_generator: AsyncIterable[ChatCompletionChunk | dict[str, Any]],
    original_request: ClaudeMessagesRequest,
) -> AsyncIterator[str]:
    """Handle a streaming response from the OpenAI SDK and re-encode it as Anthropic SSE."""
    async with aclosing(stream_anthropic_events(response_generator, original_request)) as events:
        async for event in events:
            yield format_sse_event(event)


def _log_streaming_completion(converter: AnthropicStreamingConverter, completed: bool):
    """Log a summary of the streaming completion."""
    status = "COMPLETE" if completed else "INTERRUPTED"
    logger.info(
        f"STREAMING {status} - Model: {converter.model}, "
        f"Chunks: {converter.openai_chunks_received}, "
        f"Blocks: {converter.next_block_index}, "
        f"Stop reason: {converter.pending_stop_reason}, "
        f"Input tokens: {converter.input_tokens}, Output tokens: {converter.output_tokens}, "
        f"Text: {converter.text_chars} chars"
    )
    for tool_call in converter.tool_calls_summary:
        logger.info(
            f"🔧   Tool: {tool_call['name']} (id: {tool_call['id']}), input keys: {tool_call['input_keys']}"
        )
