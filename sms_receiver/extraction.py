"""
Field extraction for inbound SMS webhooks.

Twilio normally posts ``MessageSid``, ``From`` and ``Body`` as plain form
fields. Some senders lower-case the keys, and a known provider quirk
re-encodes the whole query string into a single ``body`` field, sometimes
with a stray leading ``?``. Extraction runs an ordered pipeline of
extractors over the decoded form; the first non-empty value per field wins.

Nothing here touches HTTP or the database.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from sms_receiver.errors import InputTooLong, MalformedRequest, MissingFields
from sms_receiver.schemas import (
    MAX_BODY_LENGTH,
    MAX_FROM_NUMBER_LENGTH,
    MAX_MESSAGE_SID_LENGTH,
)
from sms_receiver.utils import parse_query_string, strip_query_prefix

logger = logging.getLogger(__name__)

# Record field -> provider form key
FIELD_KEYS: Dict[str, str] = {
    "message_sid": "MessageSid",
    "from_number": "From",
    "body": "Body",
}

FIELD_LIMITS: Dict[str, int] = {
    "message_sid": MAX_MESSAGE_SID_LENGTH,
    "from_number": MAX_FROM_NUMBER_LENGTH,
    "body": MAX_BODY_LENGTH,
}

# Form field that may carry the whole payload re-encoded as a query string
NESTED_FIELD = "body"


@dataclass(frozen=True)
class ExtractedFields:
    message_sid: Optional[str] = None
    from_number: Optional[str] = None
    body: Optional[str] = None

    def missing(self) -> List[str]:
        """Provider key names of the fields that are still empty."""
        return [key for field, key in FIELD_KEYS.items() if not getattr(self, field)]

    def is_complete(self) -> bool:
        return not self.missing()


def lookup(form: Mapping[str, str], key: str, allow_lower: bool = True) -> Optional[str]:
    """Value for ``key``, falling back to its lower-cased variant."""
    value = form.get(key)
    if not value and allow_lower:
        value = form.get(key.lower())
    return value or None


def is_nested_carrier(value: Optional[str]) -> bool:
    """
    True if ``value`` is a re-encoded query string holding webhook fields
    rather than message text.
    """
    if not value:
        return False
    try:
        nested = parse_query_string(strip_query_prefix(value), plus_as_space=False)
    except ValueError:
        return False
    return any(lookup(nested, key) is not None for key in FIELD_KEYS.values())


class FormFieldExtractor:
    """Reads the provider keys straight from the posted form."""

    name = "form"

    def extract(self, form: Mapping[str, str]) -> Dict[str, Optional[str]]:
        values = {
            "message_sid": lookup(form, FIELD_KEYS["message_sid"]),
            "from_number": lookup(form, FIELD_KEYS["from_number"]),
        }

        # 'body' is only a nested carrier when the other fields are missing;
        # otherwise it is message text, even if it looks like a query string.
        carrier = not all(values.values()) and is_nested_carrier(form.get(NESTED_FIELD))
        values["body"] = lookup(form, FIELD_KEYS["body"], allow_lower=not carrier)
        return values


class NestedBodyExtractor:
    """Re-parses the ``body`` form field as its own query string."""

    name = "nested_body"

    def extract(self, form: Mapping[str, str]) -> Dict[str, Optional[str]]:
        raw = form.get(NESTED_FIELD)
        if not raw:
            return {}

        try:
            nested = parse_query_string(strip_query_prefix(raw), plus_as_space=False)
        except ValueError as e:
            raise MalformedRequest("Invalid body parameter", nested=True) from e

        return {field: lookup(nested, key) for field, key in FIELD_KEYS.items()}


DEFAULT_EXTRACTORS = (FormFieldExtractor(), NestedBodyExtractor())


def extract_fields(form: Mapping[str, str], extractors: Sequence = DEFAULT_EXTRACTORS) -> ExtractedFields:
    """
    Run ``extractors`` in order and merge their results.

    Earlier extractors take precedence; a later extractor only fills fields
    that are still empty, and is not consulted at all once every field is
    set.

    Raises:
        MalformedRequest: If an extractor cannot parse its input
    """
    merged: Dict[str, str] = {}

    for extractor in extractors:
        if all(merged.get(field) for field in FIELD_KEYS):
            break

        for field, value in extractor.extract(form).items():
            if value and not merged.get(field):
                logger.debug(f"Field {field} taken from {extractor.name} extractor")
                merged[field] = value

    return ExtractedFields(**merged)


def validate_fields(fields: ExtractedFields, enforce_lengths: bool = True) -> None:
    """
    Check presence, then (optionally) length, of every field.

    Raises:
        MissingFields: If any field is empty
        InputTooLong: If a field exceeds its column size
    """
    missing = fields.missing()
    if missing:
        raise MissingFields(missing)

    if not enforce_lengths:
        return

    too_long = [
        FIELD_KEYS[field]
        for field, limit in FIELD_LIMITS.items()
        if len(getattr(fields, field)) > limit
    ]
    if too_long:
        raise InputTooLong(too_long)
