# src/floorplan_editor/logging_config.py
"""Logging configuration for the floor-plan editor."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | "
    "<level>{message}</level>"
)


def _json_sink(message) -> None:
    record = message.record
    payload: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }
    if record["exception"] is not None:
        exc = record["exception"]
        payload["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }
    payload.update(record["extra"])
    sys.stderr.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def _stderr_sink(message) -> None:
    # looked up per call so a redirected stderr is used
    sys.stderr.write(message)


def setup_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """Replace loguru's default handler with the editor's handlers.

    Args:
        level: Minimum log level.
        json_format: Emit one JSON object per line instead of coloured text.
        log_file: Optional rotating log file.
    """
    logger.remove()
    logger.configure(extra={"component": "editor"})

    if json_format:
        logger.add(_json_sink, level=level)
    else:
        logger.add(_stderr_sink, format=TEXT_FORMAT, level=level, colorize=sys.stderr.isatty())

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=TEXT_FORMAT,
            level=level,
            rotation="10 MB",
            retention="7 days",
        )


def get_logger(component: str):
    """Logger bound to an editor component name."""
    return logger.bind(component=component)
