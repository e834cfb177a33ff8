"""Webhook receiver that stores inbound Twilio SMS messages."""

__version__ = "1.0.0"
