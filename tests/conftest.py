"""Shared test fixtures for the streaming gateway tests."""

import json
from pathlib import Path
from typing import Dict, Optional

import pytest
from sse_starlette.sse import AppStatus

from stream_gateway.config import GatewayConfig, load_config


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "upstream": {
            "base_url": "https://upstream.example.com",
            "api_version": "2023-06-01",
            "default_model": "claude-3-7-sonnet-20250219",
            "default_max_tokens": 20000,
            "timeout_seconds": 30,
        },
        "streaming": {
            "queue_size": 8,
            "keepalive_seconds": 15,
        },
        "thinking_budget_tokens": 16000,
        "log_file": str(tmp_path / "test.log"),
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "test_config.json"
    path.write_text(json.dumps(config))
    return str(path)


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_config(test_config_path: str) -> GatewayConfig:
    """Return a loaded test GatewayConfig."""
    return load_config(test_config_path)


@pytest.fixture(autouse=True)
def _reset_sse_exit_event() -> None:
    """sse-starlette caches its shutdown event on the first event loop it sees."""
    AppStatus.should_exit_event = None
