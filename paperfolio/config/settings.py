"""
Paperfolio Configuration Settings
Uses pydantic-settings for environment-based configuration management.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""
    model_config = SettingsConfigDict(env_prefix="DB_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="paperfolio", description="Database name")
    user: str = Field(default="paperfolio", description="Database user")
    password: str = Field(default="", description="Database password")
    url: Optional[str] = Field(default=None, description="Full async URL, overrides host/port/name")

    # Connection pool settings
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Connection recycle time")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def async_url(self) -> str:
        """Build async database URL."""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"

    @property
    def is_sqlite(self) -> bool:
        return self.async_url.startswith("sqlite")


class JWTSettings(BaseSettings):
    """JWT authentication settings."""
    model_config = SettingsConfigDict(env_prefix="JWT_")

    secret_key: str = Field(default="change-me-paperfolio-development-secret-key", description="JWT secret key")
    algorithm: str = Field(default="HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(default=15, description="Access token expiry")
    refresh_token_expire_days: int = Field(default=7, description="Refresh token expiry")

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("JWT secret key must be at least 32 characters")
        return v


class SecuritySettings(BaseSettings):
    """Security-related settings."""
    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    bcrypt_rounds: int = Field(default=12, description="Bcrypt rounds")
    password_pattern: str = Field(
        default=r"^(?=.*[A-Za-z])(?=.*\d).{8,128}$",
        description="Password must hold a letter and a digit, 8 to 128 characters"
    )


class RegistrationSettings(BaseSettings):
    """Self-service registration settings."""
    model_config = SettingsConfigDict(env_prefix="REG_")

    passcode: Optional[str] = Field(default=None, description="Initial registration passcode")


class WalletSettings(BaseSettings):
    """Wallet defaults."""
    model_config = SettingsConfigDict(env_prefix="WALLET_")

    initial_balance: Decimal = Field(default=Decimal("10000.00"), description="Cash granted on sign-up")


class TradingSettings(BaseSettings):
    """Trade execution settings."""
    model_config = SettingsConfigDict(env_prefix="TRADING_")

    slippage_tolerance_pct: Optional[Decimal] = Field(
        default=None,
        description="Max deviation of quote from expected price, in percent. Unset disables the check."
    )


class FinnhubSettings(BaseSettings):
    """Finnhub REST and websocket settings."""
    model_config = SettingsConfigDict(env_prefix="FINNHUB_")

    api_base: str = Field(default="https://finnhub.io/api/v1", description="REST base URL")
    ws_url: str = Field(default="wss://ws.finnhub.io", description="Trade websocket URL")
    token: Optional[str] = Field(default=None, description="API token")
    stream_enabled: bool = Field(default=True, description="Connect the trade websocket on startup")
    throttle_seconds: float = Field(default=1.6, description="Pause before throttled calls")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    rate_limit_retries: int = Field(default=2, description="Retries after a 429 before giving up")
    rate_limit_delay_seconds: float = Field(default=1.0, description="Fixed delay between 429 retries")


class RapidApiSettings(BaseSettings):
    """RapidAPI Yahoo Finance settings."""
    model_config = SettingsConfigDict(env_prefix="RAPIDAPI_")

    base_url: str = Field(default="https://yh-finance.p.rapidapi.com", description="Base URL")
    key: Optional[str] = Field(default=None, description="RapidAPI key")
    host: str = Field(default="yh-finance.p.rapidapi.com", description="RapidAPI host header")
    batch_size: int = Field(default=10, description="Symbols per quotes request")
    batch_delay_seconds: float = Field(default=0.25, description="Pause between quote batches")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    rate_limit_retries: int = Field(default=2, description="Retries after a 429 before giving up")
    rate_limit_delay_seconds: float = Field(default=1.0, description="Fixed delay between 429 retries")


class StreamSettings(BaseSettings):
    """Server-sent price stream settings."""
    model_config = SettingsConfigDict(env_prefix="STREAM_")

    max_symbols: int = Field(default=50, description="Max symbols per connection")
    heartbeat_seconds: float = Field(default=15.0, description="Heartbeat interval")
    reconnect_delay_base: float = Field(default=1.0, description="Upstream reconnect base delay")
    reconnect_delay_max: float = Field(default=60.0, description="Upstream reconnect delay cap")


class SymbolImportSettings(BaseSettings):
    """Symbol catalog import limits."""
    model_config = SettingsConfigDict(env_prefix="SYMBOLS_")

    max_per_import: int = Field(default=25, description="New symbols per import")
    total_limit: int = Field(default=50, description="Total symbols in the catalog")
    page_size: int = Field(default=25, description="Default list page size")


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""
    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log format"
    )
    json_format: bool = Field(default=True, description="Use JSON format for logs")


class ApplicationSettings(BaseSettings):
    """Main application settings aggregating all sub-settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application info
    app_name: str = Field(default="Paperfolio", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment (development/staging/production)")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")

    # CORS settings
    cors_origins: List[str] = Field(default=["http://localhost:3000"], description="Allowed CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials in CORS")
    cors_allow_methods: List[str] = Field(default=["*"], description="Allowed CORS methods")
    cors_allow_headers: List[str] = Field(default=["*"], description="Allowed CORS headers")

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    trading: TradingSettings = Field(default_factory=TradingSettings)
    finnhub: FinnhubSettings = Field(default_factory=FinnhubSettings)
    rapidapi: RapidApiSettings = Field(default_factory=RapidApiSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    symbols: SymbolImportSettings = Field(default_factory=SymbolImportSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache()
def get_settings() -> ApplicationSettings:
    """
    Get cached application settings.

    Returns:
        ApplicationSettings: The application settings instance.
    """
    return ApplicationSettings()


# Export settings instance
settings = get_settings()
