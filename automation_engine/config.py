"""Configuration management for the Workflow Automation Engine."""

import os
from typing import Optional, Dict, Any, List, Union, get_args, get_origin
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


ENV_PREFIX = "AUTOMATION_ENGINE_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Workflow Automation Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./automation_engine.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Action execution settings
    action_timeout: float = Field(
        default=30.0,
        description="Default per-action timeout in seconds"
    )
    max_action_attempts: int = Field(
        default=3,
        description="Maximum attempts per action, first attempt included"
    )
    retry_base_delay: float = Field(default=1.0, description="Initial retry backoff in seconds")
    retry_max_delay: float = Field(default=30.0, description="Upper bound for retry backoff in seconds")
    retry_exponential_base: float = Field(default=2.0, description="Backoff growth factor")
    retry_jitter: bool = Field(default=True, description="Randomize retry delays")
    max_action_workers: int = Field(
        default=10,
        description="Action attempts awaited concurrently; abandoned attempts free their slot"
    )

    # Engine policies
    stop_on_error: bool = Field(
        default=False,
        description="Stop the remaining actions of a run after the first failure"
    )
    single_flight: bool = Field(
        default=False,
        description="Reject a run while another run of the same workflow is in progress"
    )
    auto_disable_after: Optional[int] = Field(
        default=None,
        description="Disable a workflow after this many consecutive non-successful runs"
    )

    # Reporting and retention
    reporting_timezone: str = Field(default="UTC", description="Timezone for per-day trends")
    default_stats_days: int = Field(default=30, description="Default statistics window in days")
    execution_retention_days: int = Field(
        default=90,
        description="Number of days of execution history kept by the cleanup job"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log lines")

    # Request monitoring
    slow_request_threshold: float = Field(
        default=5.0,
        description="Slow request threshold in seconds"
    )
    enable_request_logging: bool = Field(
        default=True,
        description="Log every HTTP request"
    )

    # Security settings
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    cors_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "DELETE"],
        description="CORS allowed methods"
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = [db_type.value for db_type in DatabaseType]
        # Driver suffixes such as postgresql+psycopg are accepted
        scheme = v.split('://')[0].lower().split('+')[0]

        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")

        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('action_timeout', 'retry_max_delay')
    @classmethod
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("Value must be greater than zero seconds")
        return v

    @field_validator('retry_base_delay')
    @classmethod
    def validate_base_delay(cls, v):
        if v < 0:
            raise ValueError("Retry base delay cannot be negative")
        return v

    @field_validator('max_action_attempts', 'max_action_workers', 'default_stats_days',
                     'execution_retention_days')
    @classmethod
    def validate_at_least_one(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator('auto_disable_after')
    @classmethod
    def validate_auto_disable_after(cls, v):
        if v is not None and v < 1:
            raise ValueError("auto_disable_after must be at least 1 when set")
        return v

    @field_validator('reporting_timezone')
    @classmethod
    def validate_reporting_timezone(cls, v):
        """Validate that the reporting timezone is a known IANA name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def database_type(self) -> DatabaseType:
        """Get the database type from the URL."""
        scheme = self.database_url.split('://')[0].lower()
        if scheme == 'sqlite':
            return DatabaseType.SQLITE
        elif scheme.startswith('postgresql'):
            return DatabaseType.POSTGRESQL
        elif scheme.startswith('mysql'):
            return DatabaseType.MYSQL
        else:
            raise ValueError(f"Unknown database type: {scheme}")

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_type == DatabaseType.SQLITE

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and not self.reload

    def get_database_connect_args(self) -> Dict[str, Any]:
        """Get database connection arguments based on database type."""
        if self.is_sqlite:
            return {"check_same_thread": False}
        return {}

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables.

        Each field is read from ``AUTOMATION_ENGINE_<FIELD_NAME>``. Unset or
        empty variables keep the field default; list fields are comma separated.
        """
        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            values[name] = _parse_env_value(raw, field.annotation)
        return cls(**values)


def _parse_env_value(raw: str, annotation: Any) -> Any:
    """Convert an environment string for a field; pydantic coerces the rest."""
    if get_origin(annotation) is Union:
        annotation = next(arg for arg in get_args(annotation) if arg is not type(None))

    if annotation is bool:
        return raw.lower() in ('true', '1', 'yes', 'on')
    if annotation is list or get_origin(annotation) is list:
        return [item.strip() for item in raw.split(',') if item.strip()]
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return raw.upper()
    return raw


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and the environment."""
    global _config
    from dotenv import load_dotenv

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()
    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def validate_config(config: AppConfig) -> None:
    """Validate configuration settings that depend on the host environment."""
    errors = []

    if config.is_sqlite and ":memory:" not in config.database_url:
        db_path = config.database_url.split(":///", 1)[-1]
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            try:
                os.makedirs(db_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create database directory {db_dir}: {e}")

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir and not os.path.exists(log_dir):
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create log directory {log_dir}: {e}")

    if config.retry_base_delay > config.retry_max_delay:
        errors.append("retry_base_delay cannot exceed retry_max_delay")

    if errors:
        raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


# Environment-specific configurations
def get_development_config() -> AppConfig:
    """Get development configuration."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG,
        database_echo=True
    )


def get_production_config() -> AppConfig:
    """Get production configuration."""
    return AppConfig(
        debug=False,
        reload=False,
        log_level=LogLevel.INFO,
        database_echo=False,
        structured_logging=True,
        cors_origins=[]  # Restrict CORS in production
    )


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        action_timeout=5.0,
        max_action_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.01,
        retry_jitter=False,
        max_action_workers=4,
        enable_request_logging=False
    )
