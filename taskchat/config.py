"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings (shared with the chat system)
    db_server: str = "localhost"
    db_name: str = "taskchat"
    db_user: str = "taskchat"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False

    # JWT settings (tokens are issued by the chat system's auth service)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Server settings
    host: str = "0.0.0.0"
    port: int = 5001
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    # WebSocket settings
    ws_max_message_size: int = 65536  # 64KB max inbound frame
    ws_outbound_queue_size: int = 256  # Pending messages per session before dropping
    ws_receive_timeout: float = 45.0  # Seconds of silence before probing the client
    ws_ping_interval: float = 30.0  # Server-initiated keepalive
    ws_rate_limit_messages: int = 100  # Max inbound messages per window
    ws_rate_limit_window: float = 10.0  # Window in seconds

    # Due-date reminder loop
    due_reminder_enabled: bool = True
    due_reminder_interval_seconds: int = 300
    due_reminder_window_hours: int = 24

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
