"""
Pydantic-based configuration models for the session relay.

Every sub-configuration is a BaseSettings with its own environment prefix, so
deployments inject endpoint URLs and storage names without code changes.
"""

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from ..structured_logging.logging_config import get_logger

logger = get_logger(__name__)


def _parse_csv(value: Any) -> list[str]:
    """Accept a JSON-style list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, list | tuple):
        return [str(item).strip() for item in value if str(item).strip()]
    s = str(value).strip()
    if s.startswith("[") and s.endswith("]"):
        s = s[1:-1]
    return [item.strip().strip("\"'") for item in s.split(",") if item.strip().strip("\"'")]


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8080, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore"}


class StorageConfig(BaseSettings):
    """Backing store selection and table names."""

    backend: str = Field(default="memory", description="Storage backend: memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    sessions_table: str = Field(
        default="imk-initiative-sessions",
        description="Name of the session table (key prefix on Redis)",
    )
    connections_table: str = Field(
        default="imk-websocket-connections",
        description="Name of the connection table (key prefix on Redis)",
    )
    sweep_interval_seconds: float = Field(default=60.0, description="Expiry sweep interval in seconds")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate storage backend name."""
        valid_backends = ["memory", "redis"]
        v_lower = v.lower()
        if v_lower not in valid_backends:
            logger.error("Invalid storage backend", backend=v, valid_backends=valid_backends)
            raise ValueError(f"Storage backend must be one of {valid_backends}, got '{v}'")
        return v_lower

    @field_validator("sessions_table", "connections_table")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Table name cannot be empty")
        return v.strip()

    @field_validator("sweep_interval_seconds")
    @classmethod
    def validate_sweep_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Sweep interval must be positive")
        return v

    model_config = {"env_prefix": "STORAGE_", "case_sensitive": False, "extra": "ignore"}


class SessionConfig(BaseSettings):
    """Session and connection lifetime defaults."""

    default_lifetime_minutes: int = Field(default=480, description="Session lifetime when the host omits one")
    connection_ttl_seconds: int = Field(default=7200, description="Connection record time-to-live")
    delivery_timeout_seconds: float = Field(default=5.0, description="Upper bound on one push to one viewer")

    @field_validator("default_lifetime_minutes", "connection_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Lifetime values must be at least 1")
        return v

    @field_validator("delivery_timeout_seconds")
    @classmethod
    def validate_delivery_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("delivery_timeout_seconds must be positive")
        return v

    model_config = {"env_prefix": "SESSION_", "case_sensitive": False, "extra": "ignore"}


class CORSConfig(BaseSettings):
    """Cross-origin resource sharing configuration."""

    allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Origins permitted to access the session API",
    )
    allow_methods: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        description="HTTP methods permitted by CORS responses",
    )
    allow_headers: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["Content-Type", "Authorization"],
        description="Request headers permitted by CORS responses",
    )

    @field_validator("allow_origins", "allow_headers", mode="before")
    @classmethod
    def parse_list(cls, value: object) -> list[str]:
        parsed = _parse_csv(value)
        if not parsed:
            raise ValueError("At least one entry must be provided")
        return parsed

    @field_validator("allow_methods", mode="before")
    @classmethod
    def parse_allow_methods(cls, value: object) -> list[str]:
        methods = _parse_csv(value)
        if not methods:
            raise ValueError("At least one method must be provided")
        return [method.upper() for method in methods]

    model_config = {"env_prefix": "CORS_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="console", description="Log format")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "production"]
        if v not in valid_environments:
            logger.error("Invalid logging environment", environment=v, valid_environments=valid_environments)
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["console", "json"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}


class ClientConfig(BaseSettings):
    """Endpoints and timings used by the client session library."""

    sessions_api_url: str = Field(default="", description="Base URL of the session HTTP API")
    websocket_api_url: str = Field(default="", description="URL of the realtime WebSocket endpoint")
    ping_interval_seconds: float = Field(default=30.0, description="Keepalive ping interval")
    max_reconnect_attempts: int = Field(default=5, description="Reconnect attempts before giving up")
    reconnect_base_delay_seconds: float = Field(default=1.0, description="Base reconnect delay")
    reconnect_max_delay_seconds: float = Field(default=30.0, description="Reconnect delay cap")
    request_timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")

    @field_validator("sessions_api_url", "websocket_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("ping_interval_seconds", "reconnect_base_delay_seconds", "reconnect_max_delay_seconds")
    @classmethod
    def validate_positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Intervals must be positive")
        return v

    @field_validator("max_reconnect_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_reconnect_attempts must be non-negative")
        return v

    model_config = {"env_prefix": "RELAY_CLIENT_", "case_sensitive": False, "extra": "ignore"}


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates all sub-configurations. Access via get_config().
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    cors: CORSConfig = Field(default_factory=CORSConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}
