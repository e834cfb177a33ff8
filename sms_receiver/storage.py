import logging
from datetime import timezone

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from sms_receiver.errors import PersistenceError
from sms_receiver.schemas import IncomingMessage

logger = logging.getLogger(__name__)

TABLE_NAME = "sms_messages"

# Base class for SQLAlchemy models
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """
    Create the process-wide SQLAlchemy engine (and its connection pool).

    SQLite URLs get check_same_thread=False so the pool can be shared with
    the threadpool that runs inserts; in-memory SQLite additionally uses a
    single static connection so every session sees the same database.
    """
    url = make_url(database_url)
    kwargs = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool

    logger.debug(f"Creating engine for backend: {url.get_backend_name()}")
    return create_engine(url, **kwargs)


def init_db(engine: Engine) -> None:
    """
    Create the sms_messages table if it does not exist.
    Only used when CREATE_TABLES is set; production schemas are managed outside the app.
    """
    try:
        # Import models to register them with Base.metadata
        from sms_receiver.models import SmsMessage  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def ping_db(engine: Engine) -> None:
    """
    Open a connection and run SELECT 1.

    Raises:
        SQLAlchemyError: If the database is unreachable
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def check_db_health(engine: Engine) -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the sms_messages table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        ping_db(engine)
        if not inspect(engine).has_table(TABLE_NAME):
            logger.error(f"Database schema not applied: '{TABLE_NAME}' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Persistence Gateway
# =============================================================================

class MessageGateway:
    """
    Writes inbound messages to the sms_messages table.

    One instance is built at startup around the shared engine and injected
    into the webhook handler. The table is append-only: there is no lookup,
    upsert or deduplication on message_sid.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def save(self, message: IncomingMessage) -> None:
        """
        Insert one message as a new row.

        Args:
            message: Validated inbound message

        Raises:
            PersistenceError: If the insert fails for any reason
        """
        from sms_receiver.models import SmsMessage

        logger.debug(f"Inserting message: sid={message.message_sid}, from={message.from_number}")

        row = SmsMessage(
            message_sid=message.message_sid,
            from_number=message.from_number,
            body=message.body,
            # DATETIME column holds naive UTC
            received_at=message.received_at.astimezone(timezone.utc).replace(tzinfo=None),
        )

        with self.session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError() from e

        logger.debug(f"Message stored: sid={message.message_sid}")
