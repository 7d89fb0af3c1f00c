"""Translate upstream stream events into downstream gateway events.

Each upstream event maps to zero or one downstream event. A small carry
state travels alongside the stream: the model reported by message_start
and the usage counts seen so far, so that later message_delta events,
which only restate output tokens, can still be priced in full.

Stream usage is priced as LATEST_MODEL regardless of the model that served
the request, so streamed costs are only an estimate for other models.
Passing price_with_stream_model=True prices against the model reported by
message_start instead.
"""

import dataclasses
import json
from dataclasses import dataclass
from typing import Optional, Tuple

from stream_gateway.models import (
    CombinedUsage,
    ContentBlock,
    ContentEvent,
    MessageStopEvent,
    StreamEvent,
    UsageEvent,
)
from stream_gateway.pricing import PricingTable, price_usage
from stream_gateway.upstream import (
    ContentBlockDelta,
    MessageDelta,
    MessageStart,
    MessageStop,
    UpstreamContentBlock,
    UpstreamEvent,
    UpstreamUsage,
)

# Model every streamed usage event is priced against by default.
LATEST_MODEL = "claude-3-7-sonnet-20250219"


@dataclass(frozen=True)
class TranslationState:
    """What the translator remembers between events of one stream."""

    model: Optional[str] = None
    usage: UpstreamUsage = dataclasses.field(default_factory=UpstreamUsage)


def content_block_from_upstream(block: UpstreamContentBlock) -> ContentBlock:
    """Map an upstream content block field-for-field onto a ContentBlock.

    Tool-use input has no dedicated field downstream and travels as JSON in
    ``data``.
    """
    data = block.data
    if data is None and block.input is not None:
        data = json.dumps(block.input)
    return ContentBlock(
        content_type=block.type,
        text=block.text or "",
        thinking=block.thinking,
        signature=block.signature,
        data=data,
    )


def content_block_from_delta(event: ContentBlockDelta) -> ContentBlock:
    delta = event.delta
    if delta.kind == "thinking" and delta.thinking is not None:
        return ContentBlock(
            content_type=delta.kind,
            text="",
            thinking=delta.thinking,
            signature=delta.signature,
            data=delta.partial_json,
        )
    return ContentBlock(
        content_type=delta.kind,
        text=delta.text or "",
        thinking=None,
        signature=delta.signature,
        data=delta.partial_json,
    )


def merge_usage(carried: UpstreamUsage, update: UpstreamUsage) -> UpstreamUsage:
    """Overlay the non-zero counts of ``update`` on ``carried``.

    Upstream usage counts are cumulative, so a later non-zero value always
    supersedes an earlier one.
    """
    return UpstreamUsage(
        input_tokens=update.input_tokens or carried.input_tokens,
        output_tokens=update.output_tokens or carried.output_tokens,
        cache_creation_input_tokens=(
            update.cache_creation_input_tokens or carried.cache_creation_input_tokens
        ),
        cache_read_input_tokens=(
            update.cache_read_input_tokens or carried.cache_read_input_tokens
        ),
    )


def usage_event(
    model: str, usage: UpstreamUsage, pricing: PricingTable
) -> UsageEvent:
    record = price_usage(
        model,
        usage.input_tokens,
        usage.output_tokens,
        usage.cache_creation_input_tokens,
        usage.cache_read_input_tokens,
        pricing,
    )
    return UsageEvent(usage=CombinedUsage.from_record(record))


def translate(
    event: UpstreamEvent,
    state: TranslationState,
    pricing: PricingTable,
    price_with_stream_model: bool = False,
) -> Tuple[Optional[StreamEvent], TranslationState]:
    """Translate one upstream event.

    Args:
        event: The parsed upstream event.
        state: Carry state from the previous call (TranslationState() at
            the start of a stream).
        pricing: Pricing table used for usage events.
        price_with_stream_model: Price usage with the model reported by
            message_start (when there was one) instead of LATEST_MODEL.

    Returns:
        The downstream event to deliver (or None) and the updated state.
    """
    if isinstance(event, MessageStart):
        message = event.message
        state = TranslationState(
            model=message.model or state.model,
            usage=merge_usage(state.usage, message.usage),
        )
        if not message.content:
            return None, state
        blocks = [content_block_from_upstream(b) for b in message.content]
        return ContentEvent(content=blocks), state

    if isinstance(event, ContentBlockDelta):
        return ContentEvent(content=[content_block_from_delta(event)]), state

    if isinstance(event, MessageDelta):
        if event.usage is None:
            return None, state
        usage = merge_usage(state.usage, event.usage)
        state = dataclasses.replace(state, usage=usage)
        model = LATEST_MODEL
        if price_with_stream_model and state.model:
            model = state.model
        return usage_event(model, usage, pricing), state

    if isinstance(event, MessageStop):
        return MessageStopEvent(), state

    return None, state
