"""
Error taxonomy for the SMS webhook.

Every error is local to one request. ``detail`` is what the caller sees,
``error_type`` is the tag written to the structured log.
"""

from typing import Sequence


class WebhookError(Exception):
    """Base class for errors rendered as plain-text HTTP responses."""

    status_code = 400
    error_type = "WEBHOOK_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class MalformedRequest(WebhookError):
    """The request body, or the nested ``body`` field, is not a valid form."""

    error_type = "WEBHOOK_INVALID_FORM"

    def __init__(self, detail: str = "Invalid form data", nested: bool = False):
        super().__init__(detail)
        if nested:
            self.error_type = "WEBHOOK_INVALID_BODY"


class ValidationError(WebhookError):
    """Required fields are missing or exceed their length limits."""

    error_type = "WEBHOOK_NO_INPUT"

    def __init__(self, detail: str, fields: Sequence[str] = ()):
        super().__init__(detail)
        self.fields = list(fields)


class MissingFields(ValidationError):
    def __init__(self, fields: Sequence[str]):
        super().__init__("Missing required fields", fields)


class InputTooLong(ValidationError):
    error_type = "WEBHOOK_INPUT_TOO_LONG"

    def __init__(self, fields: Sequence[str]):
        super().__init__("Input length exceeded", fields)


class PersistenceError(WebhookError):
    """The message could not be written to the database."""

    status_code = 500
    error_type = "DB_SAVE_ERROR"

    def __init__(self, detail: str = "Failed to save message"):
        super().__init__(detail)


class ResponseWriteError(WebhookError):
    """The acknowledgment could not be delivered. Logged only."""

    status_code = 500
    error_type = "WEBHOOK_RESPONSE_ERROR"
