"""
Response classes for the SMS webhook.
"""

from fastapi.responses import Response

from sms_receiver.schemas import ACKNOWLEDGMENT_XML


class TwiMLResponse(Response):
    """
    XML acknowledgment returned to the provider after a message is stored.

    The row is already committed when this is sent; a failed write is
    logged by RequestLoggingMiddleware and otherwise ignored.
    """

    media_type = "application/xml"

    def __init__(self, content: str = ACKNOWLEDGMENT_XML, status_code: int = 200, **kwargs):
        super().__init__(content=content, status_code=status_code, **kwargs)
