"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database, so no MySQL server
is needed. Settings are built explicitly instead of read from the
environment.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from sms_receiver.config import Settings, get_settings
from sms_receiver.main import create_app
from sms_receiver.models import SmsMessage
from sms_receiver.storage import Base, create_db_engine

# Drop any settings cached from the developer's environment
get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, DATABASE_URL="sqlite://", CREATE_TABLES=True)


@pytest.fixture
def engine():
    """Fresh in-memory database with the sms_messages table."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def app(settings, engine):
    return create_app(settings=settings, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def stored_rows(engine):
    """Callable returning every row in sms_messages, oldest first."""
    def fetch():
        with Session(engine) as session:
            return session.scalars(select(SmsMessage).order_by(SmsMessage.id)).all()

    return fetch
