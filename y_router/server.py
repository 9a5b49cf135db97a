"""
FastAPI server for y-router.
This module contains the FastAPI application and API endpoints.
"""

import json
import logging
import sys
import time
from contextlib import aclosing, asynccontextmanager
from datetime import datetime, timezone

import openai
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from openai import AsyncOpenAI
from pydantic import ValidationError

from .client import create_chat_completion, create_openai_client
from .config import config
from .converter import (
    TranslationError,
    convert_anthropic_request_to_openai,
    convert_openai_response_to_anthropic,
)
from .pages import INDEX_HTML, INSTALL_SH, PRIVACY_HTML, TERMS_HTML
from .streaming import convert_openai_streaming_response_to_anthropic, format_sse_event
from .types import ClaudeMessagesRequest, Constants
from .utils import _extract_error_details, _format_error_message

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan event handler."""
    # Logging is configured by __main__ before uvicorn imports the app
    logger.info(f"🚀 y-router starting: {config.describe()}")
    yield


app = FastAPI(lifespan=lifespan)


def anthropic_error(status_code: int, error_type: str, message: str) -> JSONResponse:
    """Build an error response in the Anthropic error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"type": "error", "error": {"type": error_type, "message": message}},
    )


def _body_too_large(size: int) -> JSONResponse:
    return anthropic_error(
        413,
        "request_too_large",
        f"Request body of {size} bytes exceeds the {config.max_body_size} byte limit",
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    method = request.method
    path = request.url.path

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > config.max_body_size:
        logger.warning(f"Rejecting {method} {path}: body of {content_length} bytes is too large")
        return _body_too_large(int(content_length))

    start_time = time.time()
    response = await call_next(request)
    logger.debug(
        f"Request: {method} {path} -> {response.status_code} ({time.time() - start_time:.3f}s)"
    )
    return response


# Outermost, so CORS headers are also set on responses produced by the middleware above
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(404)
async def not_found(request: Request, exc):
    return PlainTextResponse("Not Found", status_code=404)


@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/", response_class=HTMLResponse)
async def index():
    return INDEX_HTML


@app.get("/terms", response_class=HTMLResponse)
async def terms():
    return TERMS_HTML


@app.get("/privacy", response_class=HTMLResponse)
async def privacy():
    return PRIVACY_HTML


@app.get("/install.sh")
async def install_script():
    return PlainTextResponse(INSTALL_SH, media_type="text/plain; charset=utf-8")


def upstream_error_response(e: openai.APIError) -> Response:
    """Map an upstream SDK error onto the HTTP response returned to the caller."""
    if isinstance(e, openai.APIStatusError):
        # Relay the upstream status and body unchanged
        return Response(
            content=e.response.content,
            status_code=e.status_code,
            media_type=e.response.headers.get("content-type", "application/json"),
        )
    if isinstance(e, openai.APITimeoutError):
        return anthropic_error(504, "timeout_error", "Request to upstream timed out")
    if isinstance(e, openai.APIConnectionError):
        return anthropic_error(502, "api_error", "Unable to connect to upstream")
    return anthropic_error(502, "api_error", str(e))


async def stream_with_error_event(
    response_generator, request: ClaudeMessagesRequest, client: AsyncOpenAI
):
    """Yield translated SSE events, reporting a mid-stream failure as an error event."""
    try:
        async with aclosing(
            convert_openai_streaming_response_to_anthropic(response_generator, request)
        ) as events:
            async for event in events:
                yield event
    except Exception as e:
        error_details = _extract_error_details(e)
        logger.error(f"Error during streaming: {json.dumps(error_details, indent=2)}")
        yield format_sse_event(
            {
                "type": Constants.EVENT_ERROR,
                "error": {
                    "type": "api_error",
                    "message": _format_error_message(e, error_details),
                },
            }
        )
    finally:
        await client.close()


@app.post("/v1/messages")
async def create_message(raw_request: Request):
    api_key = raw_request.headers.get("x-api-key")
    if not api_key:
        return JSONResponse(status_code=401, content={"error": "Missing x-api-key header"})

    body = await raw_request.body()
    # Bodies sent without a Content-Length header are checked here
    if len(body) > config.max_body_size:
        return _body_too_large(len(body))

    try:
        request = ClaudeMessagesRequest.model_validate_json(body, strict=False)
    except ValidationError as e:
        logger.warning(f"Invalid Messages request: {e.error_count()} validation error(s)")
        return anthropic_error(400, "invalid_request_error", str(e))

    openai_request = convert_anthropic_request_to_openai(request)

    log_request_beautifully(
        "POST",
        raw_request.url.path,
        request.model,
        len(openai_request["messages"]),
        len(request.tools) if request.tools else 0,
        request.stream,
        200,
    )

    client = create_openai_client(api_key)
    start_time = time.time()
    try:
        upstream = await create_chat_completion(client, openai_request)
    except openai.APIError as e:
        await client.close()
        error_details = _extract_error_details(e)
        logger.error(f"Upstream request failed: {json.dumps(error_details, indent=2)}")
        return upstream_error_response(e)
    except Exception as e:
        await client.close()
        error_details = _extract_error_details(e)
        logger.error(f"Error processing request: {json.dumps(error_details, indent=2)}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if request.stream:
        # The client stays open until the stream generator finishes
        return StreamingResponse(
            stream_with_error_event(upstream, request, client),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        logger.debug(
            f"✅ RESPONSE RECEIVED: Model={openai_request.get('model')}, Time={time.time() - start_time:.2f}s"
        )
        anthropic_response = convert_openai_response_to_anthropic(upstream, request)
    except TranslationError as e:
        logger.error(f"Could not translate upstream response: {e}")
        return anthropic_error(502, "api_error", str(e))
    except Exception as e:
        error_details = _extract_error_details(e)
        logger.error(f"Error processing response: {json.dumps(error_details, indent=2)}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    finally:
        await client.close()

    logger.info(
        f"📊 {request.model}: stop_reason={anthropic_response.stop_reason}, "
        f"input_tokens={anthropic_response.usage.input_tokens}, "
        f"output_tokens={anthropic_response.usage.output_tokens}"
    )
    return JSONResponse(content=anthropic_response.model_dump())


# Define ANSI color codes for terminal output
class Colors:
    CYAN = "\033[96m"
    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    MAGENTA = "\033[95m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def log_request_beautifully(method, path, model, num_messages, num_tools, stream, status_code):
    """Print a one-glance summary of a translated request to the console."""
    endpoint = path.split("?")[0]

    model_display = f"{Colors.CYAN}{model}{Colors.RESET}"
    mode_str = f"{Colors.YELLOW}{'stream' if stream else 'json'}{Colors.RESET}"
    tools_str = f"{Colors.MAGENTA}{num_tools} tools{Colors.RESET}"
    messages_str = f"{Colors.BLUE}{num_messages} messages{Colors.RESET}"

    status_str = (
        f"{Colors.GREEN}✓ {status_code} OK{Colors.RESET}"
        if status_code == 200
        else f"{Colors.RED}✗ {status_code}{Colors.RESET}"
    )

    log_line = f"{Colors.BOLD}{method} {endpoint}{Colors.RESET} {status_str}"
    model_line = f"{model_display} → {config.openrouter_base_url} {mode_str} {tools_str} {messages_str}"

    print(log_line)
    print(model_line)
    sys.stdout.flush()
