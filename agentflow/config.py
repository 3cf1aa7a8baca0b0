"""Configuration management for the AgentFlow engine."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ConditionFallback(str, Enum):
    """Branch strategies for condition nodes without a simple expression."""
    ALWAYS_FALSE = "always_false"
    ALWAYS_TRUE = "always_true"
    RANDOM_BRANCH = "random_branch"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="AgentFlow Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./agentflow.db",
        description="Database connection URL for execution records"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    sink_retry_attempts: int = Field(default=3, description="Attempts per execution sink write")

    # Integration settings
    http_timeout: float = Field(default=30.0, description="Default timeout for api_call nodes in seconds")
    ai_timeout: float = Field(default=60.0, description="Timeout for text generation calls in seconds")
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key; unset means simulation mode")
    default_ai_model: str = Field(default="gemini-2.0-flash-lite", description="Model used when an ai_action node names none")
    report_email: Optional[str] = Field(default=None, description="Recipient of smart execution email reports")
    data_source_url: Optional[str] = Field(default=None, description="URL read by smart execution data_fetch steps")

    # Execution engine settings
    max_node_visits: int = Field(default=1000, description="Maximum node visits per run")
    parallel_branches: bool = Field(default=False, description="Run sibling branches concurrently")
    max_branch_workers: int = Field(default=4, description="Worker threads per fan-out point")
    condition_fallback: ConditionFallback = Field(
        default=ConditionFallback.ALWAYS_FALSE,
        description="Branch strategy for condition nodes without a simple expression"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: Optional[str] = Field(default=None, description="Plain log format; the engine default when unset")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = ['sqlite', 'postgresql', 'mysql']
        scheme = v.split('://')[0].split('+')[0].lower()

        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")

        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('http_timeout', 'ai_timeout')
    @classmethod
    def validate_timeouts(cls, v):
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator('max_node_visits', 'max_branch_workers', 'sink_retry_attempts')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_url.lower().startswith("sqlite")

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from AGENTFLOW_* environment variables."""
        def get_env(key: str, default=None, type_func=str):
            value = os.getenv(f"AGENTFLOW_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", "AgentFlow Engine"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            database_url=get_env("DATABASE_URL", "sqlite:///./agentflow.db"),
            database_echo=get_env("DATABASE_ECHO", False, bool),
            sink_retry_attempts=get_env("SINK_RETRY_ATTEMPTS", 3, int),
            http_timeout=get_env("HTTP_TIMEOUT", 30.0, float),
            ai_timeout=get_env("AI_TIMEOUT", 60.0, float),
            gemini_api_key=get_env("GEMINI_API_KEY", os.getenv("GEMINI_API_KEY")),
            default_ai_model=get_env("DEFAULT_AI_MODEL", "gemini-2.0-flash-lite"),
            report_email=get_env("REPORT_EMAIL", os.getenv("RECEIVER_EMAIL")),
            data_source_url=get_env("DATA_SOURCE_URL", None),
            max_node_visits=get_env("MAX_NODE_VISITS", 1000, int),
            parallel_branches=get_env("PARALLEL_BRANCHES", False, bool),
            max_branch_workers=get_env("MAX_BRANCH_WORKERS", 4, int),
            condition_fallback=ConditionFallback(get_env("CONDITION_FALLBACK", "always_false")),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", None),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
        )


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
    """Validate configuration settings that depend on the filesystem."""
    errors = []

    if config.is_sqlite:
        db_path = config.database_url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir and db_path != ":memory:" and not os.path.exists(db_dir):
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

    if config.parallel_branches and config.max_branch_workers > 64:
        errors.append("max_branch_workers above 64 is not supported")

    if errors:
        from .core.exceptions import ConfigurationError
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        http_timeout=5.0,
        ai_timeout=5.0,
        max_node_visits=200,
    )
