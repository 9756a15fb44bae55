from typing import Final, Literal

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_PORT, DEFAULT_SMTP_PORT
from .domain.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env files."""

    # Server configuration
    debug: bool = Field(default=True, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Server port")

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./storyvault.db", description="Database connection URL"
    )
    db_name: str = Field(default="storyvault", description="Database name for SQLite")

    # Application configuration
    app_name: str = Field(default="StoryVault", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    public_base_url: str = Field(
        default="http://localhost:8000/api/v1",
        description="Externally visible post API base URL for management links",
    )
    posts_page_size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
        description="Default number of posts per listing page",
    )

    # Notification configuration
    notification_backend: Literal["log", "smtp"] = Field(
        default="log",
        description="How post management links reach authors ('log' or 'smtp')",
    )
    smtp_host: str = Field(default="localhost", description="SMTP server host")
    smtp_port: int = Field(
        default=DEFAULT_SMTP_PORT, ge=1, le=65535, description="SMTP server port"
    )
    smtp_username: str | None = Field(default=None, description="SMTP login")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade SMTP with STARTTLS")
    sender_email: str | None = Field(
        default=None, description="From address of notification emails"
    )
    sender_name: str | None = Field(
        default=None, description="From display name of notification emails"
    )

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so links can be joined with a single slash."""
        return v.rstrip("/")

    # Logging configuration
    log_to_file: bool = Field(
        default=False, description="Force logging to file even in debug mode"
    )

    # Pydantic Settings configuration
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    @computed_field  # type: ignore[prop-decorator]
    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL, handling SQLite with db_name."""
        if (
            self.database_url == "sqlite:///./storyvault.db"
            and self.db_name != "storyvault"
        ):
            return f"sqlite:///./{self.db_name}.db"
        return self.database_url


# Global settings instance
settings: Final = Settings()
