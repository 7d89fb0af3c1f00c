"""Logging and telemetry for the streaming gateway.

Emits log records to stdout and appends them to an append-only log file.
Each finished request also produces one structured JSON line.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("gateway")


def setup_logging(log_file: str, level: int = logging.INFO) -> None:
    """Configure the gateway logger with stdout and file handlers.

    Module loggers (``gateway.streaming``, ``gateway.provider``...) propagate
    to this one.

    Args:
        log_file: Path to the append-only log file.
        level: Minimum level for both handlers.
    """
    logger.setLevel(level)

    if not logger.handlers:
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(fmt)
        logger.addHandler(stdout_handler)

        log_path = Path(log_file)
        os.makedirs(log_path.parent, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setLevel(level)
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)


def log_request(
    *,
    request_id: str,
    mode: str,
    outcome: str,
    model: Optional[str] = None,
    usage: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None
) -> None:
    """Log a single request event as a JSON line.

    Args:
        request_id: Gateway-assigned request ID.
        mode: "stream" or "complete".
        outcome: Short outcome label (e.g. "success", "stream_opened",
            "provider_error").
        model: Model requested from the provider, if known.
        usage: Usage dict if available.
        error: Error message if the request failed.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "mode": mode,
        "outcome": outcome,
    }

    if model:
        record["model"] = model

    if usage:
        record["usage"] = usage

    if error:
        record["error"] = error

    logger.info(json.dumps(record))
