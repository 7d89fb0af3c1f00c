"""Fake upstream data and small utilities shared by the gateway tests."""

import json
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from stream_gateway.models import ChatMessage, ChatRequest, ProviderConfig
from stream_gateway.provider import UpstreamError
from stream_gateway.upstream import UpstreamEvent, UpstreamMessage, parse_upstream_event

STREAM_MODEL = "claude-3-5-haiku-20241022"


def stream_payloads(model: str = STREAM_MODEL) -> List[Dict[str, Any]]:
    """A typical upstream stream: one thinking block, then one text block."""
    return [
        {
            "type": "message_start",
            "message": {
                "id": "msg_stream",
                "type": "message",
                "role": "assistant",
                "model": model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {
                    "input_tokens": 250000,
                    "output_tokens": 1,
                    "cache_creation_input_tokens": 0,
                    "cache_read_input_tokens": 0,
                },
            },
        },
        {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "thinking", "thinking": "", "signature": ""},
        },
        {"type": "ping"},
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "thinking_delta", "thinking": "Let me think."},
        },
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "signature_delta", "signature": "sig-123"},
        },
        {"type": "content_block_stop", "index": 0},
        {
            "type": "content_block_start",
            "index": 1,
            "content_block": {"type": "text", "text": ""},
        },
        {
            "type": "content_block_delta",
            "index": 1,
            "delta": {"type": "text_delta", "text": "Hello"},
        },
        {
            "type": "content_block_delta",
            "index": 1,
            "delta": {"type": "text_delta", "text": " there"},
        },
        {"type": "content_block_stop", "index": 1},
        {
            "type": "message_delta",
            "delta": {"stop_reason": "end_turn", "stop_sequence": None},
            "usage": {"output_tokens": 100000},
        },
        {"type": "message_stop"},
    ]


def message_payload(model: str = "claude-3-5-sonnet-20241022") -> Dict[str, Any]:
    """A complete non-streaming upstream message."""
    return {
        "id": "msg_complete",
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": [
            {"type": "thinking", "thinking": "Pondering.", "signature": "sig-abc"},
            {"type": "text", "text": "Hi! How can I help?"},
        ],
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {
            "input_tokens": 1000,
            "output_tokens": 500,
            "cache_creation_input_tokens": 200,
            "cache_read_input_tokens": 100,
        },
    }


def sse_body(payloads: List[Dict[str, Any]]) -> bytes:
    """Encode payloads the way the provider frames its event stream."""
    frames = [
        "event: {}\ndata: {}\n\n".format(p["type"], json.dumps(p)) for p in payloads
    ]
    return "".join(frames).encode("utf-8")


def parse_sse(text: str) -> List[Tuple[str, Dict[str, Any]]]:
    """Split a gateway SSE response into (event name, decoded data) pairs.

    Comment lines (keep-alive pings) are skipped.
    """
    events = []
    name: Optional[str] = None
    data: List[str] = []
    for line in text.splitlines() + [""]:
        if not line:
            if name is not None or data:
                events.append((name or "message", json.loads("\n".join(data))))
            name, data = None, []
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data.append(line[len("data:"):].strip())
    return events


def make_request(**overrides: Any) -> ChatRequest:
    fields: Dict[str, Any] = {
        "messages": [ChatMessage(role="user", content="hi")],
        "stream": True,
    }
    fields.update(overrides)
    return ChatRequest(**fields)


class FakeClient:
    """Stands in for AnthropicClient.

    Streams ``events`` and, when ``fail_after`` is set, raises UpstreamError
    once that many events have been yielded.
    """

    def __init__(
        self,
        events: Optional[List[UpstreamEvent]] = None,
        fail_after: Optional[int] = None,
        message: Optional[UpstreamMessage] = None,
    ) -> None:
        self.events = events or []
        self.fail_after = fail_after
        self.message = message
        self.calls: List[Tuple[List[ChatMessage], Optional[str], ProviderConfig]] = []
        self.yielded = 0
        self.closed = False

    async def chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str],
        provider_config: ProviderConfig,
    ) -> UpstreamMessage:
        self.calls.append((messages, system, provider_config))
        if self.message is None:
            raise UpstreamError("Provider returned HTTP 529: overloaded", 529)
        return self.message

    async def chat_stream(
        self,
        messages: List[ChatMessage],
        system: Optional[str],
        provider_config: ProviderConfig,
    ) -> AsyncGenerator[UpstreamEvent, None]:
        self.calls.append((messages, system, provider_config))
        try:
            for event in self.events:
                if self.fail_after is not None and self.yielded >= self.fail_after:
                    raise UpstreamError("connection reset by peer")
                self.yielded += 1
                yield event
            if self.fail_after is not None and self.yielded >= self.fail_after:
                raise UpstreamError("connection reset by peer")
        finally:
            self.closed = True


def upstream_events(payloads: List[Dict[str, Any]]) -> List[UpstreamEvent]:
    return [parse_upstream_event(p) for p in payloads]
