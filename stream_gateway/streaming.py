"""Streaming chat orchestration.

One StreamOrchestrator serves one client stream. A producer task drains
the upstream event stream, translates each event and hands the result to
the consumer through a bounded queue; the consumer is the async iterator
returned by events(), which the HTTP layer serializes onto the connection.

Every stream opens with a start event and closes with exactly one
terminal event: done when the upstream stream ran out, error when it
failed. Nothing follows the terminal event.
"""

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncGenerator, Optional

from stream_gateway.chat import DEFAULT_THINKING_BUDGET, apply_default_thinking
from stream_gateway.models import (
    ChatRequest,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
)
from stream_gateway.pricing import PricingTable
from stream_gateway.provider import AnthropicClient, UpstreamError
from stream_gateway.translator import TranslationState, translate

logger = logging.getLogger("gateway.streaming")

DEFAULT_QUEUE_SIZE = 100
ERROR_CODE = 500


class StreamState(str, Enum):
    """Lifecycle of one client stream."""

    IDLE = "IDLE"
    STARTED = "STARTED"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StreamOrchestrator:
    """Owns the downstream event channel of a single streaming request."""

    def __init__(
        self,
        client: AnthropicClient,
        pricing: PricingTable,
        thinking_budget: int = DEFAULT_THINKING_BUDGET,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        request_id: Optional[str] = None,
        price_with_stream_model: bool = False,
    ) -> None:
        self._client = client
        self._pricing = pricing
        self._thinking_budget = thinking_budget
        self._queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue(
            maxsize=queue_size
        )
        self._closed = False
        self._producer: Optional["asyncio.Task[None]"] = None
        self._request_id = request_id
        self._price_with_stream_model = price_with_stream_model
        self.state = StreamState.IDLE

    async def events(
        self, request: ChatRequest
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run the stream and yield downstream events until the terminal one.

        Closing this iterator early (client disconnect) cancels the producer,
        which releases the upstream connection.
        """
        if self._producer is not None:
            raise RuntimeError("StreamOrchestrator instances serve a single stream")

        producer = self._producer = asyncio.create_task(self._produce(request))
        try:
            while True:
                event = await self._queue.get()
                yield event
                if event.terminal:
                    break
        finally:
            self._closed = True
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    async def _deliver(self, event: StreamEvent) -> bool:
        """Queue an event for the client; False once the client has gone."""
        if self._closed:
            logger.info(
                "[%s] Client stream closed, dropping %s event",
                self._request_id,
                event.type,
            )
            return False
        await self._queue.put(event)
        return True

    async def _produce(self, request: ChatRequest) -> None:
        self.state = StreamState.STARTED
        await self._deliver(StartEvent(created=datetime.now(timezone.utc)))

        config = apply_default_thinking(request.provider_config, self._thinking_budget)
        upstream = self._client.chat_stream(
            request.get_conversation(), request.get_system_prompt(), config
        )
        translation = TranslationState()
        self.state = StreamState.STREAMING
        try:
            async for upstream_event in upstream:
                event, translation = translate(
                    upstream_event,
                    translation,
                    self._pricing,
                    price_with_stream_model=self._price_with_stream_model,
                )
                if event is None:
                    continue
                if not await self._deliver(event):
                    logger.info(
                        "[%s] Abandoning upstream stream after client disconnect",
                        self._request_id,
                    )
                    return
        except UpstreamError as exc:
            logger.warning("[%s] Upstream stream failed: %s", self._request_id, exc)
            await self._fail(str(exc))
            return
        except Exception as exc:
            logger.exception("[%s] Unexpected error while streaming", self._request_id)
            await self._fail(str(exc))
            return
        finally:
            await upstream.aclose()

        self.state = StreamState.COMPLETED
        await self._deliver(DoneEvent())
        logger.debug("[%s] Stream completed", self._request_id)

    async def _fail(self, message: str) -> None:
        self.state = StreamState.FAILED
        await self._deliver(ErrorEvent(message=message, code=ERROR_CODE))
