"""Client for the upstream provider's Messages API.

``chat`` performs one blocking request and returns the complete message.
``chat_stream`` returns a lazy, single-use async generator of parsed
stream events. Any transport failure, non-2xx status, malformed payload or
in-band ``error`` event surfaces as UpstreamError.
"""

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from stream_gateway.config import UpstreamConfig
from stream_gateway.models import ChatMessage, ProviderConfig
from stream_gateway.upstream import (
    UpstreamEvent,
    UpstreamMessage,
    parse_upstream_event,
)

logger = logging.getLogger("gateway.provider")


class UpstreamError(Exception):
    """Raised when the upstream provider cannot produce a usable response."""

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class AnthropicClient:
    """Thin httpx wrapper around ``POST /v1/messages``."""

    def __init__(
        self,
        api_key: str,
        config: Optional[UpstreamConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._config = config or UpstreamConfig()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.timeout_seconds, transport=self._transport
        )

    def _build_request(
        self,
        messages: List[ChatMessage],
        system: Optional[str],
        provider_config: ProviderConfig,
        stream: bool,
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        url = "{}/v1/messages".format(self._config.base_url.rstrip("/"))
        headers = {
            "anthropic-version": self._config.api_version,
            "content-type": "application/json",
        }
        headers.update(provider_config.headers)
        headers["x-api-key"] = self._api_key

        payload: Dict[str, Any] = {
            "model": self._config.default_model,
            "max_tokens": self._config.default_max_tokens,
        }
        payload.update(provider_config.body)
        payload["messages"] = [{"role": m.role, "content": m.content} for m in messages]
        if system is not None:
            payload["system"] = system
        payload["stream"] = stream
        return url, headers, payload

    async def chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str],
        provider_config: ProviderConfig,
    ) -> UpstreamMessage:
        """Send one request and wait for the complete message.

        Raises:
            UpstreamError: On transport failure, non-2xx status or an
                unparseable body.
        """
        url, headers, payload = self._build_request(
            messages, system, provider_config, stream=False
        )
        try:
            async with self._client() as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamError("Failed to reach provider: {}".format(exc)) from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                "Provider returned HTTP {}: {}".format(
                    resp.status_code, resp.text[:500]
                ),
                status_code=resp.status_code,
            )

        try:
            return UpstreamMessage.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamError("Malformed provider response: {}".format(exc)) from exc

    async def chat_stream(
        self,
        messages: List[ChatMessage],
        system: Optional[str],
        provider_config: ProviderConfig,
    ) -> AsyncGenerator[UpstreamEvent, None]:
        """Stream parsed events for one request.

        The HTTP connection is held open for the generator's lifetime and
        released when it is exhausted or closed.

        Raises:
            UpstreamError: At the point in the stream where it fails.
        """
        url, headers, payload = self._build_request(
            messages, system, provider_config, stream=True
        )
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, json=payload, headers=headers
                ) as resp:
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise UpstreamError(
                            "Provider returned HTTP {}: {}".format(
                                resp.status_code,
                                body.decode("utf-8", errors="replace")[:500],
                            ),
                            status_code=resp.status_code,
                        )
                    logger.debug("Upstream stream opened (%d messages)", len(messages))
                    async for payload_data in _iter_sse_payloads(resp):
                        yield _decode_event(payload_data)
        except httpx.HTTPError as exc:
            raise UpstreamError("Provider stream failed: {}".format(exc)) from exc


async def _iter_sse_payloads(resp: httpx.Response) -> AsyncGenerator[str, None]:
    """Yield the joined ``data:`` payload of each server-sent event."""
    data_lines: List[str] = []
    async for line in resp.aiter_lines():
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip(" "))
        # "event:" lines repeat the payload's own type field; nothing to keep.
    if data_lines:
        yield "\n".join(data_lines)


def _decode_event(data: str) -> UpstreamEvent:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise UpstreamError("Malformed provider event: {}".format(exc)) from exc
    if not isinstance(payload, dict):
        raise UpstreamError("Malformed provider event: expected a JSON object")

    if payload.get("type") == "error":
        error = payload.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else None
        raise UpstreamError("Provider stream error: {}".format(message or error))

    try:
        return parse_upstream_event(payload)
    except ValidationError as exc:
        raise UpstreamError("Malformed provider event: {}".format(exc)) from exc
