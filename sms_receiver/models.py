"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/record schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from sms_receiver.schemas import MAX_FROM_NUMBER_LENGTH, MAX_MESSAGE_SID_LENGTH
from sms_receiver.storage import Base, TABLE_NAME


class SmsMessage(Base):
    """
    SQLAlchemy model for inbound SMS messages.

    Table: sms_messages
    Primary Key: id (surrogate, auto-increment)

    message_sid is not unique: provider retries are stored as
    additional rows.
    """
    __tablename__ = TABLE_NAME

    # SQLite only auto-increments INTEGER PRIMARY KEY columns
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    message_sid = Column(String(MAX_MESSAGE_SID_LENGTH), nullable=False)
    from_number = Column(String(MAX_FROM_NUMBER_LENGTH), nullable=False)
    body = Column(Text, nullable=False)
    received_at = Column(DateTime, nullable=False)  # naive UTC
