"""
Pydantic schemas for the SMS webhook.

This module contains:
- The IncomingMessage record built for each accepted webhook
- Field length limits mirroring the sms_messages column sizes
- Response models for the health endpoints
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Field Limits
# =============================================================================

MAX_MESSAGE_SID_LENGTH = 50
MAX_FROM_NUMBER_LENGTH = 15
# Concatenated SMS ceiling
MAX_BODY_LENGTH = 1600

ACKNOWLEDGMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    "<Response><Message>Message received! Thank you.</Message></Response>"
)


# =============================================================================
# Message Record
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IncomingMessage(BaseModel):
    """
    One inbound SMS, constructed per request and persisted immediately.

    Presence is validated here; length limits are enforced by the handler
    because they can be switched off.
    """
    model_config = ConfigDict(frozen=True)

    message_sid: str = Field(
        ...,
        min_length=1,
        description="Provider-assigned message identifier (Twilio MessageSid)"
    )
    from_number: str = Field(
        ...,
        min_length=1,
        description="Sender phone number, usually E.164"
    )
    body: str = Field(
        ...,
        min_length=1,
        description="Message text"
    )
    received_at: datetime = Field(
        default_factory=utc_now,
        description="Server receive time (UTC)"
    )


# =============================================================================
# Pydantic Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
