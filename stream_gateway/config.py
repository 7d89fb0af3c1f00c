"""Configuration loader for the streaming gateway.

Reads a JSON config file describing the upstream provider endpoint,
streaming parameters, the default reasoning budget and where to find the
pricing table. The upstream API token is not configured here: callers send
their own with every request.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass
class UpstreamConfig:
    """Where and how to reach the upstream provider."""

    base_url: str = "https://api.anthropic.com"
    api_version: str = "2023-06-01"
    default_model: str = "claude-3-7-sonnet-20250219"
    default_max_tokens: int = 32000
    timeout_seconds: float = 600.0


@dataclass
class StreamingConfig:
    """Parameters of the client-facing event stream."""

    queue_size: int = 100
    keepalive_seconds: float = 15
    price_with_stream_model: bool = False


@dataclass
class GatewayConfig:
    """Top-level gateway configuration."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    thinking_budget_tokens: int = 16000
    pricing_file: Optional[str] = None
    log_file: str = "logs/gateway.log"


def load_config(path: Union[str, Path]) -> GatewayConfig:
    """Load gateway configuration from a JSON file.

    Args:
        path: Path to the JSON config file.

    Returns:
        A fully resolved GatewayConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw: Dict[str, Any] = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a JSON object")

    defaults = UpstreamConfig()
    upstream_raw = raw.get("upstream", {})
    upstream = UpstreamConfig(
        base_url=upstream_raw.get("base_url", defaults.base_url),
        api_version=upstream_raw.get("api_version", defaults.api_version),
        default_model=upstream_raw.get("default_model", defaults.default_model),
        default_max_tokens=int(
            upstream_raw.get("default_max_tokens", defaults.default_max_tokens)
        ),
        timeout_seconds=float(
            upstream_raw.get("timeout_seconds", defaults.timeout_seconds)
        ),
    )

    streaming_raw = raw.get("streaming", {})
    streaming = StreamingConfig(
        queue_size=int(streaming_raw.get("queue_size", 100)),
        keepalive_seconds=float(streaming_raw.get("keepalive_seconds", 15)),
        price_with_stream_model=bool(
            streaming_raw.get("price_with_stream_model", False)
        ),
    )
    if streaming.queue_size < 1:
        raise ValueError("streaming.queue_size must be at least 1")
    if streaming.keepalive_seconds <= 0:
        raise ValueError("streaming.keepalive_seconds must be positive")

    return GatewayConfig(
        upstream=upstream,
        streaming=streaming,
        thinking_budget_tokens=int(raw.get("thinking_budget_tokens", 16000)),
        pricing_file=raw.get("pricing_file"),
        log_file=raw.get("log_file", "logs/gateway.log"),
    )
