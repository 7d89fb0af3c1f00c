"""Non-streaming chat: one upstream call, one aggregated response."""

import logging
from datetime import datetime, timezone

from stream_gateway.models import (
    ChatRequest,
    ChatResponse,
    CombinedUsage,
    ExternalApiResponse,
    ProviderConfig,
)
from stream_gateway.pricing import PricingTable, price_usage
from stream_gateway.provider import AnthropicClient
from stream_gateway.translator import content_block_from_upstream

logger = logging.getLogger("gateway.chat")

DEFAULT_THINKING_BUDGET = 16000


def apply_default_thinking(
    provider_config: ProviderConfig, budget_tokens: int = DEFAULT_THINKING_BUDGET
) -> ProviderConfig:
    """Enable extended thinking unless the caller configured it.

    Returns a new config; the caller's value for ``thinking``, including an
    explicit null, is never replaced.
    """
    if "thinking" in provider_config.body:
        return provider_config
    body = dict(provider_config.body)
    body["thinking"] = {"type": "enabled", "budget_tokens": budget_tokens}
    return provider_config.model_copy(update={"body": body})


async def complete_chat(
    client: AnthropicClient,
    request: ChatRequest,
    pricing: PricingTable,
    thinking_budget: int = DEFAULT_THINKING_BUDGET,
) -> ChatResponse:
    """Run a non-streaming chat request end to end.

    The system prompt placement must already have been validated.

    Raises:
        UpstreamError: If the provider call fails.
    """
    config = apply_default_thinking(request.provider_config, thinking_budget)
    message = await client.chat(
        request.get_conversation(), request.get_system_prompt(), config
    )

    usage = message.usage
    record = price_usage(
        message.model,
        usage.input_tokens,
        usage.output_tokens,
        usage.cache_creation_input_tokens,
        usage.cache_read_input_tokens,
        pricing,
    )
    logger.debug(
        "Upstream message %s: %d blocks, stop_reason=%s",
        message.id,
        len(message.content),
        message.stop_reason,
    )

    provider_response = None
    if request.verbose:
        # Status and headers are not surfaced by the high-level call.
        provider_response = ExternalApiResponse(
            status=200, headers={}, body=message.model_dump(mode="json")
        )

    return ChatResponse(
        created=datetime.now(timezone.utc),
        content=[content_block_from_upstream(b) for b in message.content],
        provider_response=provider_response,
        usage=CombinedUsage.from_record(record),
    )
