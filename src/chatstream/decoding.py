"""Guarded JSON decoding for untrusted stream payloads.

Upstream frames are decoded with a ceiling on their UTF-8 size and on the
nesting depth of the resulting document. Every failure returns ``None``;
malformed upstream data is an expected operating condition, so nothing here
raises.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_JSON_SIZE = 1024 * 1024
DEFAULT_MAX_JSON_DEPTH = 100


def json_depth_exceeds(value: Any, max_depth: int) -> bool:
    """Return True if *value* nests deeper than *max_depth*.

    Scalars have depth 0; each list or dict adds one level. The walk is
    iterative and stops at the first path that crosses the limit.
    """
    stack: list[tuple[Any, int]] = [(value, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        depth += 1
        if depth > max_depth:
            return True
        stack.extend((child, depth) for child in children)
    return False


def safe_json_loads(
    text: str,
    max_size: int = DEFAULT_MAX_JSON_SIZE,
    max_depth: int = DEFAULT_MAX_JSON_DEPTH,
) -> Any | None:
    """Decode *text* as JSON within the given size and depth limits.

    Args:
        text: The payload to decode.
        max_size: Maximum payload size in UTF-8 bytes.
        max_depth: Maximum nesting depth of the decoded document.

    Returns:
        The decoded value, or ``None`` when the payload is oversized, too
        deeply nested or not valid JSON.
    """
    if not isinstance(text, str):
        return None

    try:
        size = len(text.encode("utf-8"))
    except UnicodeEncodeError:
        logger.debug("Payload is not encodable as UTF-8")
        return None
    if size > max_size:
        logger.warning(f"JSON payload exceeds maximum size limit of {max_size} bytes")
        return None

    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError) as e:
        logger.debug(f"Discarding malformed JSON payload: {e}")
        return None

    if json_depth_exceeds(parsed, max_depth):
        logger.warning(f"JSON payload exceeds maximum depth limit of {max_depth}")
        return None
    return parsed
