"""
Utility functions for decoding form-encoded webhook payloads.
"""

import logging
import re
from typing import Dict
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

# A '%' that is not followed by two hex digits
_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def parse_query_string(query: str, plus_as_space: bool = True) -> Dict[str, str]:
    """
    Parse a ``key=value&key=value`` string.

    Stricter than ``urllib.parse.parse_qs``: a malformed percent-escape,
    a ``;`` separator or percent-encoded bytes that are not UTF-8 raise
    ``ValueError`` instead of passing through. When a key repeats, the
    first value is kept.

    Args:
        query: Percent-encoded query string (without leading '?')
        plus_as_space: Decode '+' as a space. Pass False for strings that
            already went through one round of form decoding, where a '+'
            is literal (e.g. an E.164 number).

    Returns:
        Mapping of decoded keys to their first decoded value
    """
    if ";" in query:
        raise ValueError("invalid semicolon separator in query")

    match = _INVALID_ESCAPE.search(query)
    if match:
        raise ValueError(f"invalid URL escape at position {match.start()}")

    if not plus_as_space:
        query = query.replace("+", "%2B")

    values: Dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=True, errors="strict"):
        values.setdefault(key, value)
    return values


def parse_form_body(raw_body: bytes, content_type: str) -> Dict[str, str]:
    """
    Decode an ``application/x-www-form-urlencoded`` request body.

    Bodies sent with any other content type yield an empty form.

    Starlette's ``request.form()`` is not used on purpose: it silently
    accepts broken percent-escapes and bad bytes, and the webhook has to
    answer those with 400 instead of storing garbled text.

    Raises:
        ValueError: If the body is not valid UTF-8 or not a valid form
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type and media_type != FORM_CONTENT_TYPE:
        logger.debug(f"Ignoring body with content type {media_type!r}")
        return {}

    return parse_query_string(raw_body.decode("utf-8"))


def strip_query_prefix(value: str) -> str:
    """Remove a single leading '?' from a nested query string."""
    if value.startswith("?"):
        return value[1:]
    return value
