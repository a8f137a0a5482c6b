"""Configuration management using pydantic-settings."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration (exchange account ownership and credentials)
    postgres_host: str = Field(default="postgres", description="PostgreSQL hostname")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_db: str = Field(default="tradebitcoin", description="PostgreSQL database name")
    postgres_user: str = Field(default="tradebitcoin", description="PostgreSQL username")
    postgres_password: str = Field(default="", description="PostgreSQL password")

    # Market Data Gateway Service Configuration
    market_data_gateway_port: int = Field(default=4500, description="HTTP/WebSocket port")
    market_data_gateway_api_key: str = Field(
        default="", description="API key for the observability REST API"
    )
    market_data_gateway_log_level: str = Field(
        default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    market_data_gateway_service_name: str = Field(
        default="market-data-gateway", description="Service identifier"
    )
    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to open browser connections",
    )

    # Session resolution (identity of the connecting browser client)
    session_url: str = Field(
        default="http://localhost:3000/api/auth/session",
        description="Web application endpoint returning the current session for a cookie",
    )
    session_timeout_seconds: float = Field(
        default=5.0, description="Timeout for session resolution requests"
    )

    # Candlestick polling
    candlesticks_poll_interval_seconds: float = Field(
        default=60.0, description="Seconds between candlestick polls for one symbol"
    )
    candlesticks_interval: str = Field(default="1m", description="Candle interval requested from adapters")
    candlesticks_limit: int = Field(default=100, description="Number of candles requested per poll")

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


# Global settings instance
settings = Settings()
