"""Centralized message constants for error messages, validation, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Request Validation Errors
    EMPTY_REQUESTER = "Requester cannot be empty"
    INVALID_SONG_LINK = "Song link must be an http(s) URL"

    # Policy Rejections
    QUEUE_PAUSED = "The request queue is currently closed"
    USER_BLOCKED = "{login} is not allowed to request songs"
    SONG_BLACKLISTED = "'{title}' matches blacklisted {kind} '{term}'"
    DURATION_TOO_LONG = "Song is {duration} long, the limit is {limit}"
    CHANNEL_POINTS_ALREADY_QUEUED = "{login} already has a channel point request in the queue"
    DUPLICATE_REQUEST = "{login} already requested this song"
    NOT_REQUEST_OWNER = "{login} does not own request {request_id}"

    # Lookup Errors
    REQUEST_NOT_IN_QUEUE = "Request {request_id} is not in the queue"
    REQUEST_NOT_IN_HISTORY = "Request {request_id} is not in the history"
    HISTORY_ORDER_MISMATCH = "History order must contain exactly the current history ids"
    UNKNOWN_SETTING = "Unknown setting: {key}"
    INVALID_SETTING_VALUE = "Invalid value for {key}: {value!r}"
    EMPTY_BLACKLIST_TERM = "Blacklist term cannot be empty"

    # Persistence Errors
    PERSISTENCE_FAILED = "Failed to persist {operation}"

    # Transport Errors
    OBSERVER_BUFFER_FULL = "Observer {observer_id} fell behind and was dropped"
    RECONNECT_EXHAUSTED = "Gave up connecting to {url} after {attempts} attempts"
    MALFORMED_MESSAGE = "Malformed message"
    INTERNAL_ERROR = "Internal server error"
    STATS_UNAVAILABLE = "Failed to fetch statistics data"

    # Time/Date Validation Errors
    TIMEZONE_REQUIRED_UTC_DATETIME = "UtcDateTime requires a timezone-aware datetime"
    UNKNOWN_TIMEZONE = "Unknown timezone: {name}"

    # Configuration Errors
    INVALID_DATABASE_URL = "Database URL must start with sqlite:// or be :memory:"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Application Lifecycle
    APP_STARTING = "Starting song request queue ({environment})"
    APP_STOPPED = "Song request queue stopped"
    APP_KEYBOARD_INTERRUPT = "Received keyboard interrupt, shutting down"
    APP_FATAL_ERROR = "Fatal error: %s"
    CONTAINER_INITIALIZED = "Container initialized"
    CONTAINER_SHUTDOWN = "Container shut down"

    # Database Lifecycle
    DATABASE_INITIALIZED = "Database initialized at %s"
    DATABASE_CLOSED = "Database manager closed"
    TABLE_MIGRATED = "Migrated table %s: added column %s"

    # Queue Engine
    ENGINE_STATE_LOADED = "Loaded state: %d queued, %d in history, active=%s"
    REQUEST_ACCEPTED = "Accepted %s request %s from %s: %s"
    REQUEST_REJECTED = "Rejected request from %s: %s"
    REQUEST_REMOVED = "Removed request %s from queue"
    REQUEST_REMOVED_BY_OWNER = "Request %s removed by its requester %s"
    QUEUE_PRIORITY_CHANGED = "Priority of queued request %s set to %s"
    ACTIVE_SONG_STARTED = "Active song: %s (requester: %s)"
    ACTIVE_SONG_FINISHED = "Song finished: %s"
    STALE_FINISH_IGNORED = "Ignoring finish for %s, active song is %s"
    QUEUE_EMPTY_ON_ADVANCE = "Advance requested but queue is empty"
    QUEUE_CLEARED = "Queue cleared (%d requests removed)"
    SYSTEM_RESET = "System reset: queue, active song and history window cleared"
    REQUEUED_FROM_HISTORY = "Requeued history entry %s as %s"
    HISTORY_REORDERED = "History reordered (%d entries)"
    HISTORY_ITEM_DELETED = "Deleted history entry %s"
    HISTORY_CLEARED = "History cleared"
    SETTING_CHANGED = "Setting %s = %r"
    BLACKLIST_CHANGED = "Blacklist %s: %s '%s'"
    BLOCKED_USERS_CHANGED = "Blocked users %s: %s"

    # Persistence Retry
    PERSIST_RETRY = "Persisting %s failed (attempt %d/%d): %s"
    PERSIST_DEGRADED = "Giving up on persisting %s after %d attempts, running degraded"

    # Broadcast Hub
    OBSERVER_CONNECTED = "Observer %s connected (%d total)"
    OBSERVER_DISCONNECTED = "Observer %s disconnected (%d remaining)"
    OBSERVER_DROPPED = "Observer %s buffer full, dropping"
    BROADCAST_SENT = "Broadcast %s to %d observers"
    OBSERVER_REQUEST_FAILED = "Observer %s request %s failed: %s"
    OBSERVER_REQUEST_CRASHED = "Observer %s request %s raised unexpectedly"

    # Statistics Broadcaster
    STATS_BROADCASTER_STARTED = "Statistics broadcaster started (every %ss)"
    STATS_BROADCASTER_STOPPED = "Statistics broadcaster stopped"
    STATS_BROADCASTER_ALREADY_RUNNING = "Statistics broadcaster already running"
    STATS_REFRESH_FAILED = "Statistics refresh failed"

    # Metadata
    METADATA_CACHE_HIT = "Metadata cache hit for %s"
    METADATA_LOOKUP_FAILED = "Metadata lookup failed for %s: %s"

    # Observer Client
    CLIENT_CONNECTING = "Connecting to %s (attempt %d)"
    CLIENT_RETRY = "Connection to %s failed, retrying in %.2fs: %s"
