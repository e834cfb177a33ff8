"""
Process entry point: validates configuration and starts uvicorn.

Usage:
    sms-receiver
    python -m sms_receiver.server
"""

import logging
import os
import sys
from typing import NoReturn

import uvicorn
from pydantic import ValidationError as SettingsError
from sqlalchemy.exc import SQLAlchemyError

from sms_receiver.config import Settings, get_settings
from sms_receiver.logging_utils import setup_logging
from sms_receiver.main import create_app
from sms_receiver.storage import create_db_engine, ping_db

logger = logging.getLogger(__name__)


def _exit_with(error_type: str, message: str) -> NoReturn:
    logger.error(message, extra={"error_type": error_type})
    sys.exit(1)


def check_tls_files(settings: Settings) -> None:
    """Exit if TLS is configured but the certificate or key file is missing."""
    if not settings.tls_enabled:
        logger.warning("CERT_FILE/KEY_FILE not set, serving plain HTTP")
        return

    for label, path in (("Certificate", settings.CERT_FILE), ("Key", settings.KEY_FILE)):
        if not os.path.isfile(path):
            _exit_with("CONFIG_ERROR", f"{label} file not found: {path}")


def run() -> None:
    """Load settings, verify the database and TLS files, then serve."""
    try:
        settings = get_settings()
    except SettingsError as e:
        setup_logging()
        _exit_with("CONFIG_ERROR", f"Invalid configuration: {e}")

    setup_logging(settings.LOG_LEVEL)

    engine = create_db_engine(settings.database_url)
    try:
        ping_db(engine)
    except SQLAlchemyError as e:
        _exit_with("DB_PING_ERROR", f"Database ping failed: {e}")

    check_tls_files(settings)

    app = create_app(settings=settings, engine=engine)

    scheme = "HTTPS" if settings.tls_enabled else "HTTP"
    logger.info(f"Starting {scheme} server on port {settings.LISTEN_PORT}")
    try:
        uvicorn.run(
            app,
            host=settings.LISTEN_HOST,
            port=settings.LISTEN_PORT,
            ssl_certfile=settings.CERT_FILE,
            ssl_keyfile=settings.KEY_FILE,
            log_config=None,
        )
    finally:
        engine.dispose()


if __name__ == "__main__":
    run()
