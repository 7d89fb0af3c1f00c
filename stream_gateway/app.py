"""FastAPI application for the streaming gateway.

Provides a single chat endpoint (``POST /v1/chat``, also mounted at ``/``)
that checks the caller's upstream token and system prompt placement, then
either:

1. streams translated provider events as Server-Sent Events, or
2. waits for the complete provider response and returns one document.

Both paths report token usage and its dollar cost.
"""

import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from stream_gateway.auth import (
    AuthenticationError,
    describe_token,
    extract_api_token,
)
from stream_gateway.chat import complete_chat
from stream_gateway.config import GatewayConfig, load_config
from stream_gateway.models import (
    ChatRequest,
    DoneEvent,
    ErrorDetail,
    ErrorEvent,
    ErrorResponse,
    UsageEvent,
)
from stream_gateway.pricing import DEFAULT_PRICING, PricingTable, load_pricing
from stream_gateway.provider import AnthropicClient, UpstreamError
from stream_gateway.streaming import StreamOrchestrator
from stream_gateway.telemetry import log_request, setup_logging

CONFIG_PATH = os.getenv("GATEWAY_CONFIG", "config/example.config.json")

logger = logging.getLogger("gateway.app")

_config: Optional[GatewayConfig] = None
_pricing: Optional[PricingTable] = None
_upstream_transport: Optional[httpx.AsyncBaseTransport] = None


def get_config() -> GatewayConfig:
    """Return the loaded gateway configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = load_config(CONFIG_PATH)
    return _config


def get_pricing() -> PricingTable:
    """Return the pricing table (lazy-init from config)."""
    global _pricing
    if _pricing is None:
        cfg = get_config()
        if cfg.pricing_file:
            try:
                _pricing = load_pricing(cfg.pricing_file)
            except (FileNotFoundError, ValueError) as exc:
                logger.warning("Using built-in pricing: %s", exc)
                _pricing = DEFAULT_PRICING
        else:
            _pricing = DEFAULT_PRICING
    return _pricing


def build_client(token: str) -> AnthropicClient:
    """Create an upstream client for one request's token."""
    return AnthropicClient(
        token, get_config().upstream, transport=_upstream_transport
    )


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Load config, logging and pricing on startup."""
    cfg = get_config()
    setup_logging(cfg.log_file)
    get_pricing()
    yield


app = FastAPI(title="Streaming LLM Gateway", version="0.1.0", lifespan=lifespan)


def _error_response(status: int, error_type: str, message: str) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = ErrorResponse(error=ErrorDetail(type=error_type, message=message))
    return JSONResponse(status_code=status, content=body.model_dump())


def _requested_model(payload: ChatRequest) -> str:
    return str(
        payload.provider_config.body.get("model")
        or get_config().upstream.default_model
    )


@app.post("/v1/chat", response_model=None)
@app.post("/", response_model=None, include_in_schema=False)
async def handle_chat(payload: ChatRequest, request: Request) -> Response:
    """Handle a chat request, streaming or not.

    Request flow:
    1. Validate system prompt placement
    2. Extract the caller's upstream token
    3. Dispatch on ``stream``
    """
    request_id = "gw-{}".format(uuid.uuid4().hex[:12])
    mode = "stream" if payload.stream else "complete"
    model = _requested_model(payload)

    if not payload.validate_system_prompt():
        message = (
            "A system prompt may be given once: either the 'system' field or "
            "a leading message with role 'system'."
        )
        log_request(
            request_id=request_id,
            mode=mode,
            outcome="invalid_system_prompt",
            model=model,
            error=message,
        )
        return _error_response(400, "invalid_system_prompt", message)

    try:
        token = extract_api_token(request.headers.raw)
    except AuthenticationError as exc:
        log_request(
            request_id=request_id,
            mode=mode,
            outcome=exc.error_type,
            model=model,
            error=exc.detail,
        )
        return _error_response(exc.status_code, exc.error_type, exc.detail)

    logger.debug("[%s] Upstream token %s", request_id, describe_token(token))
    client = build_client(token)

    if payload.stream:
        return _stream_response(client, payload, request_id, model)
    return await _complete_response(client, payload, request_id, model)


async def _complete_response(
    client: AnthropicClient, payload: ChatRequest, request_id: str, model: str
) -> JSONResponse:
    cfg = get_config()
    try:
        result = await complete_chat(
            client,
            payload,
            get_pricing(),
            thinking_budget=cfg.thinking_budget_tokens,
        )
    except UpstreamError as exc:
        log_request(
            request_id=request_id,
            mode="complete",
            outcome="provider_error",
            model=model,
            error=exc.detail,
        )
        return _error_response(502, "provider_error", exc.detail)

    log_request(
        request_id=request_id,
        mode="complete",
        outcome="success",
        model=model,
        usage=result.usage.breakdown.model_dump(),
    )
    return JSONResponse(
        status_code=200, content=result.model_dump(mode="json", exclude_none=True)
    )


def _stream_response(
    client: AnthropicClient, payload: ChatRequest, request_id: str, model: str
) -> EventSourceResponse:
    cfg = get_config()
    orchestrator = StreamOrchestrator(
        client,
        get_pricing(),
        thinking_budget=cfg.thinking_budget_tokens,
        queue_size=cfg.streaming.queue_size,
        request_id=request_id,
        price_with_stream_model=cfg.streaming.price_with_stream_model,
    )
    log_request(
        request_id=request_id, mode="stream", outcome="stream_opened", model=model
    )
    return EventSourceResponse(
        _sse_events(orchestrator, payload, request_id, model),
        ping=cfg.streaming.keepalive_seconds,
    )


async def _sse_events(
    orchestrator: StreamOrchestrator,
    payload: ChatRequest,
    request_id: str,
    model: str,
) -> AsyncIterator[Dict[str, Any]]:
    outcome = "client_disconnected"
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events = orchestrator.events(payload)
    try:
        async for event in events:
            if isinstance(event, UsageEvent):
                usage = event.usage.breakdown.model_dump()
            elif isinstance(event, ErrorEvent):
                outcome = "provider_error"
                error = event.message
            elif isinstance(event, DoneEvent):
                outcome = "success"
            yield event.to_sse()
    finally:
        await events.aclose()
        log_request(
            request_id=request_id,
            mode="stream",
            outcome=outcome,
            model=model,
            usage=usage,
            error=error,
        )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's validation errors into our error envelope format."""
    return _error_response(
        422,
        "validation_error",
        "Request validation failed: {}".format(exc.errors()),
    )


def main() -> None:
    """Serve the gateway with uvicorn."""
    uvicorn.run(
        app,
        host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
        port=int(os.getenv("GATEWAY_PORT", "1337")),
    )
