"""
Pydantic models and type definitions for the y-router translation layer.
This module contains the Anthropic-side data models, protocol constants and defaults.
"""

import json
import logging
import time
import uuid
from typing import Annotated, Any, Literal

from openai.types.chat import (
    ChatCompletionAssistantMessageParam,
    ChatCompletionContentPartImageParam,
    ChatCompletionContentPartTextParam,
    ChatCompletionMessageParam,
    ChatCompletionMessageToolCallParam,
    ChatCompletionNamedToolChoiceParam,
    ChatCompletionToolChoiceOptionParam,
    ChatCompletionToolMessageParam,
    ChatCompletionToolParam,
    ChatCompletionUserMessageParam,
)
from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

logger = logging.getLogger(__name__)


class RouterDefaults:
    """Default values for the router configuration"""

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    # Default server settings
    DEFAULT_HOST = "0.0.0.0"
    DEFAULT_PORT = 8080
    DEFAULT_LOG_LEVEL = "WARNING"

    # Request limits and timeouts
    DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024
    DEFAULT_UPSTREAM_TIMEOUT = 600.0


class Constants:
    """Constants for better maintainability"""

    ROLE_USER = "user"
    ROLE_ASSISTANT = "assistant"
    ROLE_SYSTEM = "system"
    ROLE_TOOL = "tool"

    CONTENT_TEXT = "text"
    CONTENT_IMAGE = "image"
    CONTENT_TOOL_USE = "tool_use"
    CONTENT_TOOL_RESULT = "tool_result"

    TOOL_FUNCTION = "function"

    STOP_END_TURN = "end_turn"
    STOP_MAX_TOKENS = "max_tokens"
    STOP_TOOL_USE = "tool_use"

    EVENT_MESSAGE_START = "message_start"
    EVENT_MESSAGE_STOP = "message_stop"
    EVENT_MESSAGE_DELTA = "message_delta"
    EVENT_CONTENT_BLOCK_START = "content_block_start"
    EVENT_CONTENT_BLOCK_STOP = "content_block_stop"
    EVENT_CONTENT_BLOCK_DELTA = "content_block_delta"
    EVENT_ERROR = "error"

    DELTA_TEXT = "text_delta"
    DELTA_INPUT_JSON = "input_json_delta"


# OpenAI finish_reason -> Anthropic stop_reason. Anything absent maps to end_turn.
FINISH_REASON_TO_STOP_REASON = {
    "stop": Constants.STOP_END_TURN,
    "length": Constants.STOP_MAX_TOKENS,
    "tool_calls": Constants.STOP_TOOL_USE,
}


def map_finish_reason_to_stop_reason(finish_reason: str | None) -> str:
    """Map OpenAI finish_reason to Anthropic stop_reason, failing open to end_turn."""
    return FINISH_REASON_TO_STOP_REASON.get(finish_reason, Constants.STOP_END_TURN)


def generate_unique_id(prefix: str) -> str:
    """
    Generate a unique ID with specified prefix, timestamp and random suffix.
    Format: <prefix>_<timestamp_ms>_<random_hex>
    """
    timestamp_ms = int(time.time() * 1000)
    random_suffix = uuid.uuid4().hex[:8]
    return f"{prefix}_{timestamp_ms}_{random_suffix}"


def dump_json_compact(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


# === Tool Choice Classes ===
class ClaudeToolChoiceAuto(BaseModel):
    type: Literal["auto"] = "auto"
    disable_parallel_tool_use: bool | None = None

    def to_openai(self) -> ChatCompletionToolChoiceOptionParam:
        return "auto"


class ClaudeToolChoiceAny(BaseModel):
    type: Literal["any"] = "any"
    disable_parallel_tool_use: bool | None = None

    def to_openai(self) -> ChatCompletionToolChoiceOptionParam:
        return "required"


class ClaudeToolChoiceTool(BaseModel):
    type: Literal["tool"] = "tool"
    name: str
    disable_parallel_tool_use: bool | None = None

    def to_openai(self) -> ChatCompletionNamedToolChoiceParam:
        return {"type": "function", "function": {"name": self.name}}


class ClaudeToolChoiceNone(BaseModel):
    type: Literal["none"] = "none"

    def to_openai(self) -> ChatCompletionToolChoiceOptionParam:
        return "none"


# Union type for all tool choice options
ClaudeToolChoice = (
    ClaudeToolChoiceAuto
    | ClaudeToolChoiceAny
    | ClaudeToolChoiceTool
    | ClaudeToolChoiceNone
)


# === Content Block Classes ===
class ClaudeContentBlockText(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str

    def to_openai(self) -> ChatCompletionContentPartTextParam:
        """Convert Claude text block to OpenAI text format."""
        return {"type": "text", "text": self.text}


class ClaudeContentBlockImageBase64Source(BaseModel):
    type: Literal["base64"]
    media_type: str
    data: str


class ClaudeContentBlockImageURLSource(BaseModel):
    type: Literal["url"]
    url: str


class ClaudeContentBlockImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["image"] = "image"
    source: (
        ClaudeContentBlockImageBase64Source
        | ClaudeContentBlockImageURLSource
        | dict[str, Any]
    )

    def to_openai(self) -> ChatCompletionContentPartImageParam | None:
        """Convert Claude image block to OpenAI image_url format."""
        if isinstance(self.source, ClaudeContentBlockImageBase64Source):
            return {
                "type": "image_url",
                "image_url": {
                    "url": f"data:{self.source.media_type};base64,{self.source.data}"
                },
            }
        elif isinstance(self.source, ClaudeContentBlockImageURLSource):
            return {"type": "image_url", "image_url": {"url": self.source.url}}
        logger.debug(f"Dropping image block with unsupported source: {self.source}")
        return None


class ClaudeContentBlockToolUse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    # A raw string is the degraded form kept when upstream arguments were not valid JSON
    input: dict[str, Any] | str = Field(default_factory=dict)

    def to_openai(self) -> ChatCompletionMessageToolCallParam:
        """Convert Claude tool_use to OpenAI tool_call format."""
        if isinstance(self.input, str):
            arguments_str = self.input
        else:
            arguments_str = dump_json_compact(self.input)

        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments_str},
        }


class ClaudeContentBlockToolResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[dict[str, Any]] | dict[str, Any] | None = None
    is_error: bool | None = None

    def process_content(self) -> str:
        """Flatten Claude tool_result content into the string OpenAI expects."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts = []
            for item in self.content:
                if item.get("type") == "text" and isinstance(item.get("text"), str):
                    parts.append(item["text"])
                else:
                    parts.append(dump_json_compact(item))
            return "\n".join(parts)
        return dump_json_compact(self.content)

    def to_openai_message(self) -> ChatCompletionToolMessageParam:
        """Convert Claude tool_result to OpenAI tool role message format."""
        return {
            "role": "tool",
            "tool_call_id": self.tool_use_id,
            "content": self.process_content(),
        }


class ClaudeContentBlockOther(BaseModel):
    """Any block kind this router has no OpenAI mapping for (thinking, document, ...)."""

    model_config = ConfigDict(extra="allow")

    type: str


_KNOWN_BLOCK_TYPES = {
    Constants.CONTENT_TEXT,
    Constants.CONTENT_IMAGE,
    Constants.CONTENT_TOOL_USE,
    Constants.CONTENT_TOOL_RESULT,
}


def _content_block_tag(value: Any) -> str:
    block_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return block_type if block_type in _KNOWN_BLOCK_TYPES else "other"


ClaudeContentBlock = Annotated[
    Annotated[ClaudeContentBlockText, Tag("text")]
    | Annotated[ClaudeContentBlockImage, Tag("image")]
    | Annotated[ClaudeContentBlockToolUse, Tag("tool_use")]
    | Annotated[ClaudeContentBlockToolResult, Tag("tool_result")]
    | Annotated[ClaudeContentBlockOther, Tag("other")],
    Discriminator(_content_block_tag),
]


class ClaudeSystemContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ClaudeTool(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)

    def to_openai(self) -> ChatCompletionToolParam:
        """Convert Claude tool declaration to an OpenAI function tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or "",
                "parameters": self.input_schema,
            },
        }


class ClaudeUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ClaudeMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str | list[ClaudeContentBlock]

    def to_openai_messages(self) -> list[ChatCompletionMessageParam]:
        """
        Convert Claude message (user/assistant) to OpenAI message format (user/assistant/tool).
        Returns a list because every tool_result block becomes its own tool message.
        """
        if isinstance(self.content, str):
            return [{"role": self.role, "content": self.content}]

        if self.role == Constants.ROLE_ASSISTANT:
            return self._assistant_to_openai()
        return self._user_to_openai()

    def _assistant_to_openai(self) -> list[ChatCompletionMessageParam]:
        text_content = ""
        tool_calls: list[ChatCompletionMessageToolCallParam] = []

        for block in self.content:
            if isinstance(block, ClaudeContentBlockText):
                text_content += block.text
            elif isinstance(block, ClaudeContentBlockToolUse):
                tool_calls.append(block.to_openai())
            else:
                logger.debug(f"Dropping unsupported assistant block: {block.type}")

        assistant_msg: ChatCompletionAssistantMessageParam = {
            "role": "assistant",
            "content": text_content if text_content or not tool_calls else None,
        }
        if tool_calls:
            assistant_msg["tool_calls"] = tool_calls
        return [assistant_msg]

    def _user_to_openai(self) -> list[ChatCompletionMessageParam]:
        tool_messages: list[ChatCompletionToolMessageParam] = []
        parts: list[ChatCompletionContentPartTextParam | ChatCompletionContentPartImageParam] = []
        merged_text = ""
        has_image = False

        for block in self.content:
            if isinstance(block, ClaudeContentBlockText):
                merged_text += block.text
            elif isinstance(block, ClaudeContentBlockImage):
                part = block.to_openai()
                if part:
                    if merged_text:
                        parts.append({"type": "text", "text": merged_text})
                        merged_text = ""
                    parts.append(part)
                    has_image = True
            elif isinstance(block, ClaudeContentBlockToolResult):
                tool_messages.append(block.to_openai_message())
            else:
                logger.debug(f"Dropping unsupported user block: {block.type}")

        if merged_text:
            parts.append({"type": "text", "text": merged_text})

        # Tool results must directly follow the assistant turn that issued the calls
        openai_messages: list[ChatCompletionMessageParam] = list(tool_messages)

        user_msg: ChatCompletionUserMessageParam | None = None
        if has_image:
            user_msg = {"role": "user", "content": parts}
        elif parts:
            user_msg = {"role": "user", "content": parts[0]["text"]}
        elif not tool_messages:
            user_msg = {"role": "user", "content": ""}

        if user_msg is not None:
            openai_messages.append(user_msg)
        return openai_messages


class ClaudeMessagesRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str
    max_tokens: int
    messages: list[ClaudeMessage]
    system: str | list[ClaudeSystemContent] | None = None
    stream: bool | None = False
    temperature: float | None = None
    top_p: float | None = None
    tools: list[ClaudeTool] | None = None
    tool_choice: ClaudeToolChoice | None = Field(default=None, discriminator="type")

    def extract_system_content(self) -> str:
        """Extract system content from either the string or the text-block form."""
        if not self.system:
            return ""
        if isinstance(self.system, str):
            return self.system
        return "\n".join(block.text for block in self.system)

    def to_openai_request(self) -> dict[str, Any]:
        """Convert Anthropic API request to OpenAI API format."""
        openai_messages: list[ChatCompletionMessageParam] = []

        system_content = self.extract_system_content()
        if system_content:
            openai_messages.append({"role": "system", "content": system_content})

        for msg in self.messages:
            openai_messages.extend(msg.to_openai_messages())

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": openai_messages,
            "max_tokens": self.max_tokens,
            "stream": bool(self.stream),
        }
        if self.temperature is not None:
            request_params["temperature"] = self.temperature
        if self.top_p is not None:
            request_params["top_p"] = self.top_p

        if self.tools:
            request_params["tools"] = [tool.to_openai() for tool in self.tools]
            if self.tool_choice:
                request_params["tool_choice"] = self.tool_choice.to_openai()
        elif self.tool_choice:
            logger.debug("Dropping tool_choice because the request declares no tools")

        return request_params


class ClaudeMessagesResponse(BaseModel):
    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    model: str
    content: list[ClaudeContentBlockText | ClaudeContentBlockToolUse]
    stop_reason: Literal["end_turn", "max_tokens", "tool_use"] | None = None
    stop_sequence: str | None = None
    usage: ClaudeUsage
