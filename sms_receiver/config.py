from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration (MySQL)
    DB_USERNAME: Optional[str] = None
    DB_PASSWORD: Optional[str] = None
    DB_HOST: Optional[str] = None
    DB_PORT: Optional[int] = None
    DB_NAME: Optional[str] = None

    # Full SQLAlchemy URL, overrides the DB_* parts when set
    DATABASE_URL: Optional[str] = None

    # Server Configuration
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = 8443
    CERT_FILE: Optional[str] = None
    KEY_FILE: Optional[str] = None

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Webhook Behaviour
    ENFORCE_FIELD_LENGTHS: bool = True

    # Run create_all at startup (development / tests only)
    CREATE_TABLES: bool = False

    @model_validator(mode="after")
    def check_required_groups(self) -> "Settings":
        """Require a usable database target and a complete TLS pair."""
        if not self.DATABASE_URL:
            missing = [
                name for name in ("DB_USERNAME", "DB_PASSWORD", "DB_HOST", "DB_PORT", "DB_NAME")
                if getattr(self, name) in (None, "")
            ]
            if missing:
                raise ValueError(
                    f"Missing required environment variables: {', '.join(missing)}"
                )

        if bool(self.CERT_FILE) != bool(self.KEY_FILE):
            raise ValueError("CERT_FILE and KEY_FILE must be set together")

        return self

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the message store."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return URL.create(
            "mysql+pymysql",
            username=self.DB_USERNAME,
            password=self.DB_PASSWORD,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        ).render_as_string(hide_password=False)

    @property
    def tls_enabled(self) -> bool:
        return bool(self.CERT_FILE and self.KEY_FILE)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()
