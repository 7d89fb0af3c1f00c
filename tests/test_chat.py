"""Tests for the non-streaming orchestrator and the default thinking merge."""

import pytest

from helpers import FakeClient, make_request, message_payload
from stream_gateway.chat import apply_default_thinking, complete_chat
from stream_gateway.models import ChatMessage, ProviderConfig
from stream_gateway.pricing import DEFAULT_PRICING, calculate_cost, format_cost
from stream_gateway.provider import UpstreamError
from stream_gateway.upstream import UpstreamMessage


class TestApplyDefaultThinking:
    def test_adds_default_when_absent(self) -> None:
        config = ProviderConfig(body={"temperature": 1})
        merged = apply_default_thinking(config, 16000)
        assert merged.body == {
            "temperature": 1,
            "thinking": {"type": "enabled", "budget_tokens": 16000},
        }

    def test_does_not_mutate_input(self) -> None:
        config = ProviderConfig(body={"temperature": 1})
        apply_default_thinking(config)
        assert "thinking" not in config.body

    def test_explicit_value_preserved(self) -> None:
        explicit = {"type": "enabled", "budget_tokens": 64000}
        config = ProviderConfig(body={"thinking": explicit})
        merged = apply_default_thinking(config, 16000)
        assert merged.body["thinking"] == explicit
        assert merged == config

    def test_explicit_null_preserved(self) -> None:
        config = ProviderConfig(body={"thinking": None})
        assert apply_default_thinking(config).body["thinking"] is None

    def test_idempotent(self) -> None:
        once = apply_default_thinking(ProviderConfig(), 1024)
        twice = apply_default_thinking(once, 9999)
        assert twice == once

    def test_headers_untouched(self) -> None:
        config = ProviderConfig(headers={"anthropic-beta": "x"})
        assert apply_default_thinking(config).headers == {"anthropic-beta": "x"}


@pytest.mark.asyncio
async def test_complete_chat_content_and_usage() -> None:
    upstream = UpstreamMessage.model_validate(message_payload())
    client = FakeClient(message=upstream)

    response = await complete_chat(client, make_request(stream=False), DEFAULT_PRICING)

    assert [b.content_type for b in response.content] == ["thinking", "text"]
    assert response.content[0].thinking == "Pondering."
    assert response.content[0].signature == "sig-abc"
    assert response.content[0].text == ""
    assert response.content[1].text == "Hi! How can I help?"

    breakdown = response.usage.breakdown
    assert breakdown.input_tokens == 1000
    assert breakdown.output_tokens == 500
    assert breakdown.cached_write_tokens == 200
    assert breakdown.cached_read_tokens == 100
    assert breakdown.total_tokens == 1500
    expected = calculate_cost(upstream.model, 1000, 500, 200, 100, DEFAULT_PRICING)
    assert response.usage.total_cost == format_cost(expected) == "$0.011"
    assert breakdown.total_cost == response.usage.total_cost
    assert response.provider_response is None


@pytest.mark.asyncio
async def test_complete_chat_verbose_attaches_raw_body() -> None:
    upstream = UpstreamMessage.model_validate(message_payload())
    client = FakeClient(message=upstream)

    response = await complete_chat(
        client, make_request(stream=False, verbose=True), DEFAULT_PRICING
    )

    raw = response.provider_response
    assert raw is not None
    assert raw.status == 200
    assert raw.headers == {}
    assert raw.body["id"] == "msg_complete"
    assert raw.body["usage"]["input_tokens"] == 1000


@pytest.mark.asyncio
async def test_complete_chat_sends_system_separately() -> None:
    client = FakeClient(message=UpstreamMessage.model_validate(message_payload()))
    request = make_request(
        stream=False,
        messages=[
            ChatMessage(role="system", content="Answer in French."),
            ChatMessage(role="user", content="hi"),
        ],
    )

    await complete_chat(client, request, DEFAULT_PRICING, thinking_budget=4096)

    ((messages, system, config),) = client.calls
    assert system == "Answer in French."
    assert [m.role for m in messages] == ["user"]
    assert config.body["thinking"]["budget_tokens"] == 4096


@pytest.mark.asyncio
async def test_complete_chat_propagates_upstream_error() -> None:
    with pytest.raises(UpstreamError, match="529"):
        await complete_chat(FakeClient(), make_request(stream=False), DEFAULT_PRICING)
