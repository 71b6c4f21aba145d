"""
Event payload display helpers.

Payloads are opaque. For the detail view they are pretty-printed when they
are structured (or a string holding JSON); anything that cannot be parsed is
shown as the raw string instead.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayloadView:
    """Display form of an event payload."""
    structured: bool
    text: str
    value: Any = None


def format_payload(data: Any, indent: int = 2) -> PayloadView:
    """
    Prepare an event payload for display.

    Args:
        data: Opaque payload (dict, list, JSON string, raw string or None)
        indent: JSON indentation

    Returns:
        PayloadView: Structured view, or the raw text when parsing fails
    """
    if data is None:
        return PayloadView(structured=False, text="")

    value = data
    if isinstance(data, (bytes, bytearray)):
        value = data.decode('utf-8', errors='replace')

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.startswith(('{', '[')):
            return PayloadView(structured=False, text=value)
        try:
            value = json.loads(stripped)
        except ValueError as e:
            logger.debug(f"Payload is not valid JSON, showing raw text: {e}")
            return PayloadView(structured=False, text=value)

    try:
        text = json.dumps(value, indent=indent, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError) as e:
        logger.debug(f"Payload is not serializable, showing raw text: {e}")
        return PayloadView(structured=False, text=str(data))

    return PayloadView(structured=True, text=text, value=value)
