"""Admission policy for new song requests.

Each rule is a plain callable ``(draft, state, context) -> PolicyRejection | None``
so deployments can add, drop or replace rules without touching the engine.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from song_request_queue.domain.requests.entities import (
    QueueState,
    RequestDraft,
    SongRequest,
    format_duration,
)
from song_request_queue.domain.requests.value_objects import RequestType, normalize_song_link
from song_request_queue.domain.shared.exceptions import PolicyRejection
from song_request_queue.domain.shared.messages import ErrorMessages


@dataclass(frozen=True)
class DurationLimits:
    """Per-type maximum song length in seconds."""

    donation_max_s: int = 600
    channel_points_max_s: int = 300

    def for_type(self, request_type: RequestType) -> int:
        if request_type is RequestType.DONATION:
            return self.donation_max_s
        return self.channel_points_max_s


@dataclass(frozen=True)
class PolicyContext:
    now: datetime
    limits: DurationLimits = field(default_factory=DurationLimits)
    duplicate_cooldown: timedelta = timedelta(0)


PolicyRule = Callable[[RequestDraft, QueueState, PolicyContext], PolicyRejection | None]


def reject_blocked_user(draft: RequestDraft, state: QueueState, ctx: PolicyContext) -> PolicyRejection | None:
    if draft.requester_login in state.blocked_users:
        return PolicyRejection(
            "blocked_user", ErrorMessages.USER_BLOCKED.format(login=draft.requester_login)
        )
    return None


def reject_blacklisted(draft: RequestDraft, state: QueueState, ctx: PolicyContext) -> PolicyRejection | None:
    for entry in state.blacklist:
        if entry.matches(draft):
            return PolicyRejection(
                "blacklist",
                ErrorMessages.SONG_BLACKLISTED.format(
                    title=draft.title, kind=entry.kind.value, term=entry.term
                ),
            )
    return None


def reject_too_long(draft: RequestDraft, state: QueueState, ctx: PolicyContext) -> PolicyRejection | None:
    """Unknown durations pass; the check applies once metadata is resolved."""
    if draft.duration_seconds is None:
        return None

    limit = ctx.limits.for_type(draft.request_type)
    operator_limit = state.settings.max_duration_seconds
    if operator_limit is not None:
        limit = min(limit, operator_limit)

    if draft.duration_seconds > limit:
        return PolicyRejection(
            "duration",
            ErrorMessages.DURATION_TOO_LONG.format(
                duration=format_duration(draft.duration_seconds), limit=format_duration(limit)
            ),
        )
    return None


def reject_second_channel_point_request(
    draft: RequestDraft, state: QueueState, ctx: PolicyContext
) -> PolicyRejection | None:
    if draft.request_type is not RequestType.CHANNEL_POINTS:
        return None
    for queued in state.queue:
        if queued.request_type is RequestType.CHANNEL_POINTS and queued.is_owned_by(draft.requester_login):
            return PolicyRejection(
                "channel_points_limit",
                ErrorMessages.CHANNEL_POINTS_ALREADY_QUEUED.format(login=draft.requester_login),
            )
    return None


def reject_duplicate(draft: RequestDraft, state: QueueState, ctx: PolicyContext) -> PolicyRejection | None:
    """Same song by the same requester, still pending or completed within the cooldown."""
    key = normalize_song_link(draft.song_link)

    def same_song(request: SongRequest) -> bool:
        return request.is_owned_by(draft.requester_login) and request.link_key == key

    pending = list(state.queue)
    if state.active_song is not None:
        pending.append(state.active_song)

    duplicate = any(same_song(r) for r in pending)
    if not duplicate and ctx.duplicate_cooldown > timedelta(0):
        cutoff = ctx.now - ctx.duplicate_cooldown
        duplicate = any(
            same_song(r) and r.completed_at is not None and r.completed_at >= cutoff
            for r in state.history
        )

    if duplicate:
        return PolicyRejection(
            "duplicate", ErrorMessages.DUPLICATE_REQUEST.format(login=draft.requester_login)
        )
    return None


DEFAULT_RULES: tuple[PolicyRule, ...] = (
    reject_blocked_user,
    reject_blacklisted,
    reject_too_long,
    reject_second_channel_point_request,
    reject_duplicate,
)


class RequestPolicy:
    """Ordered chain of admission rules; the first rejection wins."""

    def __init__(
        self,
        rules: Iterable[PolicyRule] = DEFAULT_RULES,
        *,
        limits: DurationLimits | None = None,
        duplicate_cooldown: timedelta = timedelta(0),
        channel_points_one_in_queue: bool = True,
    ) -> None:
        rules = list(rules)
        if not channel_points_one_in_queue and reject_second_channel_point_request in rules:
            rules.remove(reject_second_channel_point_request)
        self._rules = rules
        self._limits = limits or DurationLimits()
        self._duplicate_cooldown = duplicate_cooldown

    @property
    def rules(self) -> tuple[PolicyRule, ...]:
        return tuple(self._rules)

    def check(self, draft: RequestDraft, state: QueueState, now: datetime) -> None:
        """Raise the first PolicyRejection produced by the rule chain."""
        ctx = PolicyContext(now=now, limits=self._limits, duplicate_cooldown=self._duplicate_cooldown)
        for rule in self._rules:
            rejection = rule(draft, state, ctx)
            if rejection is not None:
                raise rejection


class AllowAll(RequestPolicy):
    """Policy with no rules, for tests and trusted ingestion paths."""

    def __init__(self) -> None:
        super().__init__(rules=())
