"""
y-router - A translation shim that lets Anthropic Messages API clients talk to
OpenAI Chat Completions-compatible backends such as OpenRouter.

This package provides request, response and streaming format conversion between the two APIs.
"""

__version__ = "0.1.0"
__author__ = "y-router"

# Export main components for easier imports
from .config import Config
from .converter import (
    TranslationError,
    convert_anthropic_request_to_openai,
    convert_openai_response_to_anthropic,
)
from .server import app
from .streaming import (
    AnthropicStreamingConverter,
    convert_openai_streaming_response_to_anthropic,
)
from .types import ClaudeMessagesRequest, ClaudeMessagesResponse

__all__ = [
    "Config",
    "app",
    "ClaudeMessagesRequest",
    "ClaudeMessagesResponse",
    "TranslationError",
    "convert_anthropic_request_to_openai",
    "convert_openai_response_to_anthropic",
    "AnthropicStreamingConverter",
    "convert_openai_streaming_response_to_anthropic",
]
