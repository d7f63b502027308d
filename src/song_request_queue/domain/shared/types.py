"""Reusable Pydantic Annotated types for domain-wide validation.

Every constrained type used across the package is defined here once,
so models can simply annotate their fields::

    from song_request_queue.domain.shared.types import LoginStr, NonEmptyStr

    class MyModel(BaseModel):
        requester_login: LoginStr
        title: NonEmptyStr
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BeforeValidator, Field

# ── Numeric constraints ─────────────────────────────────────────────

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer >= 0."""

PositiveInt = Annotated[int, Field(gt=0)]
"""Integer > 0."""


# ── String constraints ──────────────────────────────────────────────

NonEmptyStr = Annotated[str, Field(min_length=1)]
"""String with at least one character."""

SongTitleStr = Annotated[str, Field(min_length=1, max_length=500)]
"""Song title: 1-500 characters."""

HttpUrlStr = Annotated[str, Field(pattern=r"^https?://")]
"""String that starts with http:// or https://."""

LoginStr = Annotated[str, Field(min_length=1, max_length=64), AfterValidator(str.lower)]
"""Platform login, stored lower-cased for case-insensitive matching."""


# ── Domain-specific numeric constraints ─────────────────────────────

DurationSeconds = Annotated[int, Field(ge=0, le=86_400)]
"""Song duration in seconds: 0 … 86 400 (24 hours)."""

SequenceNumber = Annotated[int, Field(ge=0)]
"""Monotonic insertion sequence assigned by the queue engine."""


# ── Settings-specific constraints ──────────────────────────────────

BusyTimeoutMs = Annotated[int, Field(ge=1000, le=30000)]
"""Database busy timeout in milliseconds: 1 000 … 30 000."""

ConnectionTimeoutS = Annotated[int, Field(ge=1, le=60)]
"""Database connection timeout in seconds: 1 … 60."""

ObserverBufferSize = Annotated[int, Field(ge=1, le=10_000)]
"""Per-observer outbound message buffer: 1 … 10 000."""

RetryAttempts = Annotated[int, Field(ge=1, le=10)]
"""Bounded write attempts before degrading: 1 … 10."""


# ── Datetime constraints ────────────────────────────────────────────

def _ensure_utc(v: datetime | str) -> datetime:
    """Validate that a datetime is timezone-aware and normalise to UTC."""
    if isinstance(v, str):
        v = datetime.fromisoformat(v.replace("Z", "+00:00"))
    if v.tzinfo is None:
        raise ValueError("datetime must be timezone-aware (UTC)")
    return v.astimezone(UTC)


UtcDatetimeField = Annotated[datetime, BeforeValidator(_ensure_utc)]
"""Timezone-aware datetime, normalised to UTC on input."""
