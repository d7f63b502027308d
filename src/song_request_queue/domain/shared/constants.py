"""Centralized constants for configuration keys, database schema, and other shared values.

This module provides reusable constants that reduce magic strings and improve maintainability.
"""

from __future__ import annotations


class ConfigKeys:
    """Configuration and environment variable key names.

    Pydantic Settings already provides type-safe access; these constants keep
    raw environment lookups and documentation consistent with it.
    """

    # Top-level Settings
    ENVIRONMENT = "ENVIRONMENT"
    DEBUG = "DEBUG"
    LOG_LEVEL = "LOG_LEVEL"
    TIMEZONE = "TIMEZONE"

    # Database Settings
    DATABASE_URL = "DATABASE__URL"

    # Queue Settings
    HISTORY_WINDOW = "QUEUE__HISTORY_WINDOW"
    PERSIST_RETRY_ATTEMPTS = "QUEUE__PERSIST_RETRY_ATTEMPTS"
    DUPLICATE_COOLDOWN_MINUTES = "QUEUE__DUPLICATE_COOLDOWN_MINUTES"

    # Broadcast Settings
    OBSERVER_BUFFER_SIZE = "BROADCAST__OBSERVER_BUFFER_SIZE"
    STATS_INTERVAL_S = "BROADCAST__STATS_INTERVAL_S"

    # Server Settings
    SERVER_HOST = "SERVER__HOST"
    SERVER_PORT = "SERVER__PORT"


class SettingKeys:
    """Keys of the runtime key/value settings owned by the queue engine."""

    QUEUE_ENABLED = "queue_enabled"
    MAX_DURATION_MINUTES = "max_duration_minutes"


class SQLPragmas:
    """SQLite PRAGMA statements."""

    JOURNAL_MODE_WAL = "PRAGMA journal_mode=WAL"
    FOREIGN_KEYS_ON = "PRAGMA foreign_keys=ON"
    BUSY_TIMEOUT = "PRAGMA busy_timeout={timeout}"
    TABLE_INFO = "PRAGMA table_info({table})"


class StatsLimits:
    """Row limits for the all-time leaderboards."""

    TOP_REQUESTERS = 20
    TOP_SONGS = 20
    TOP_ARTISTS = 20


class Pagination:
    """Bounds for paged history lookups."""

    DEFAULT_LIMIT = 20
    MAX_LIMIT = 100
