"""
config.py
---------
Runtime settings for the database migrator.

Values come from environment variables, optionally seeded from a ``.env``
file next to this module (python-dotenv).  Settings are grouped into
frozen dataclasses: driver-level knobs and engine-level knobs.

Design Decision:
    Every field has a default, so an empty environment yields a working
    configuration (two table workers, 10 000-row batches, INFO logging).
    Connection strings are never read from here; they travel with each
    migration request.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)


@dataclass(frozen=True)
class DriverConfig:
    """Settings handed to the native database drivers."""
    connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("DB_CONNECT_TIMEOUT", "30"))
    )
    sqlserver_odbc_driver: str = field(
        default_factory=lambda: os.getenv(
            "SQLSERVER_ODBC_DRIVER", "ODBC Driver 18 for SQL Server"
        )
    )
    db2_odbc_driver: str = field(
        default_factory=lambda: os.getenv("DB2_ODBC_DRIVER", "IBM DB2 ODBC DRIVER")
    )
    # Spanner rejects commits carrying more mutations than this.
    spanner_max_mutations: int = field(
        default_factory=lambda: int(os.getenv("SPANNER_MAX_MUTATIONS", "80000"))
    )


@dataclass(frozen=True)
class MigrationConfig:
    """Migration engine settings."""
    table_concurrency: int = field(
        default_factory=lambda: int(os.getenv("MIGRATION_DOP", "2"))
    )
    default_batch_size: int = field(
        default_factory=lambda: int(os.getenv("MIGRATION_BATCH_SIZE", "10000"))
    )
    min_batch_size: int = 1000
    insert_chunk_size: int = field(
        default_factory=lambda: int(os.getenv("MIGRATION_INSERT_CHUNK", "1000"))
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    log_file: str | None = field(
        default_factory=lambda: os.getenv("LOG_FILE")  # None → log to stderr only
    )


@dataclass(frozen=True)
class AppConfig:
    """Root application configuration."""
    drivers: DriverConfig = field(default_factory=DriverConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    app_name: str = "Database Migrator"
    app_version: str = "1.0.0"


def load_config() -> AppConfig:
    """
    Build and return the application configuration.

    Returns:
        AppConfig: Fully populated (and frozen) configuration object.

    Example::

        cfg = load_config()
        print(cfg.migration.table_concurrency)  # 2
        print(cfg.drivers.connect_timeout)      # 30
    """
    return AppConfig()


# Module-level singleton used throughout the application
CONFIG: AppConfig = load_config()


def get_log_level() -> int:
    """Convert string log level from config to logging module constant."""
    level = getattr(logging, CONFIG.migration.log_level, None)
    if not isinstance(level, int):
        return logging.INFO
    return level
