"""Configure loguru and format ordering results for logs."""

from __future__ import annotations

import json
import sys
from typing import Any, Iterable

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> - "
            "{message}"
        ),
    )


def summarize_assignments(assignments: Iterable[tuple[int, int]], max_items: int = 12) -> str:
    """Render ``(id, order)`` pairs compactly, e.g. ``"3->0, 7->1"``.

    Long lists are truncated with a trailing count so debug logs stay on one line.
    """
    pairs = list(assignments)
    if not pairs:
        return "(none)"
    shown = ", ".join(f"{item_id}->{order}" for item_id, order in pairs[:max_items])
    if len(pairs) > max_items:
        shown += f", … (+{len(pairs) - max_items})"
    return shown


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Args:
        obj: Object to serialize.
        indent: Indentation level for JSON output.

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(obj)
