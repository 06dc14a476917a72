"""
BlockLedger - Configuration Management
========================================
Centralized configuration with Pydantic Settings.
Supports environment variables, .env files and runtime overrides.

Features:
- Automatic type validation
- Environment variables with BLOCKLEDGER_ prefix
- .env file support
- Test preset
"""

import os
from pathlib import Path
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from block_ledger.constants import DEFAULT_ROLLBACK_WINDOW


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class LedgerSettings(BaseSettings):
    """
    Main BlockLedger configuration.

    Supports:
    - Loading from environment variables (BLOCKLEDGER_*)
    - Loading from .env file
    - Programmatic overrides
    - Automatic validation

    Example:
        # From environment
        export BLOCKLEDGER_DATABASE_URL="postgresql+psycopg://ledger@db/ledger"
        export BLOCKLEDGER_API_PORT=3000

        # From code
        config = LedgerSettings(database_url="sqlite://")
    """

    model_config = SettingsConfigDict(
        env_prefix='BLOCKLEDGER_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # ========================================================================
    # STORAGE
    # ========================================================================

    database_url: str = Field(
        default="sqlite:///./data/blockledger.db",
        description="SQLAlchemy database URL"
    )

    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (debug)"
    )

    # ========================================================================
    # LEDGER PARAMETERS
    # ========================================================================

    rollback_window: int = Field(
        default=DEFAULT_ROLLBACK_WINDOW,
        ge=1,
        description="Max blocks that can be rolled back from the tip"
    )

    # ========================================================================
    # API
    # ========================================================================

    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )

    api_port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="API REST port"
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    log_to_file: bool = Field(
        default=True,
        description="Write logs to file"
    )

    log_dir: Path = Field(
        default=Path("./logs"),
        description="Log files directory"
    )

    log_format: str = Field(
        default="json",
        description="Log format: json, text"
    )

    log_rotation_mb: int = Field(
        default=100,
        ge=1,
        description="Max log file size before rotation (MB)"
    )

    log_retention_days: int = Field(
        default=30,
        ge=1,
        description="Rotated log files to keep"
    )

    # ========================================================================
    # DEVELOPMENT & DEBUG
    # ========================================================================

    dev_mode: bool = Field(
        default=False,
        description="Development mode"
    )

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format"""
        valid_formats = ['json', 'text']
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log_format: {v}. Must be one of {valid_formats}")
        return v_lower

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL syntax"""
        try:
            make_url(v)
        except ArgumentError as e:
            raise ValueError(f"Invalid database_url: {v} ({e})")
        return v

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def is_sqlite(self) -> bool:
        """Check if backend is SQLite"""
        return make_url(self.database_url).get_backend_name() == "sqlite"

    def sqlite_path(self) -> Optional[Path]:
        """Database file path for file-backed SQLite, else None"""
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite":
            return None
        if not url.database or url.database == ":memory:":
            return None
        return Path(url.database)

    def to_dict(self) -> dict:
        """Serialize config"""
        return self.model_dump()

    def to_json(self) -> str:
        """Serialize config to JSON"""
        return self.model_dump_json(indent=2)

    def __repr__(self) -> str:
        return (
            f"LedgerSettings("
            f"database_url={make_url(self.database_url).render_as_string(hide_password=True)}, "
            f"rollback_window={self.rollback_window}, "
            f"api_port={self.api_port})"
        )


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

@lru_cache(maxsize=1)
def get_settings() -> LedgerSettings:
    """
    Get cached LedgerSettings instance.

    Returns:
        LedgerSettings: Configuration instance

    Example:
        >>> config = get_settings()
        >>> config.rollback_window
        2000
    """
    return LedgerSettings()


def reload_settings() -> LedgerSettings:
    """
    Reload settings (invalidates cache).

    Use when environment variables change at runtime.
    """
    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> LedgerSettings:
    """
    Build settings with custom values.

    Example:
        >>> config = override_settings(database_url="sqlite://", rollback_window=5)
    """
    return LedgerSettings(**kwargs)


# ============================================================================
# PROFILE PRESETS
# ============================================================================

def get_test_config(**kwargs) -> LedgerSettings:
    """
    Config preset for tests.

    Features:
    - In-memory SQLite
    - No log files
    - Log DEBUG
    """
    params = dict(
        database_url="sqlite://",
        log_to_file=False,
        log_level="DEBUG",
        dev_mode=True,
    )
    params.update(kwargs)
    return LedgerSettings(**params)


# ============================================================================
# CONFIGURATION VALIDATION
# ============================================================================

def validate_config(config: LedgerSettings) -> tuple[bool, list[str]]:
    """
    Validate the complete configuration.

    Args:
        config: LedgerSettings to validate

    Returns:
        tuple: (is_valid, errors_list)
    """
    errors = []

    db_path = config.sqlite_path()
    if db_path is not None:
        parent = db_path.parent if str(db_path.parent) else Path(".")
        if parent.exists() and not os.access(parent, os.W_OK):
            errors.append(f"Database directory not writable: {parent}")

    if config.log_to_file and config.log_dir.exists() and not os.access(config.log_dir, os.W_OK):
        errors.append(f"Directory not writable: {config.log_dir}")

    return (len(errors) == 0, errors)


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "LedgerSettings",
    "get_settings",
    "reload_settings",
    "override_settings",
    "get_test_config",
    "validate_config",
]
