"""
Unit Tests for Request Admission Policies

Tests for:
- Individual rules (blocked user, blacklist, duration, channel points, duplicates)
- Rule chain ordering and configuration
"""

from datetime import UTC, datetime, timedelta

import pytest

from song_request_queue.domain.requests.entities import (
    BlacklistEntry,
    QueueState,
    RuntimeSettings,
)
from song_request_queue.domain.requests.policies import (
    AllowAll,
    DurationLimits,
    PolicyContext,
    RequestPolicy,
    reject_blacklisted,
    reject_blocked_user,
    reject_duplicate,
    reject_second_channel_point_request,
    reject_too_long,
)
from song_request_queue.domain.requests.value_objects import BlacklistKind, RequestType
from song_request_queue.domain.shared.exceptions import PolicyRejection

NOW = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)


@pytest.fixture
def ctx():
    return PolicyContext(now=NOW)


@pytest.fixture
def queued(make_draft):
    """Turn drafts into queued requests."""

    def factory(*drafts, completed_at=None):
        requests = []
        for i, draft in enumerate(drafts):
            request = draft.to_request(request_id=f"q{i}", sequence=i, now=NOW)
            if completed_at is not None:
                request = request.completed(completed_at)
            requests.append(request)
        return tuple(requests)

    return factory


class TestBlockedUserRule:
    def test_blocked_login_rejected(self, make_draft, ctx):
        state = QueueState(blocked_users=frozenset({"troll"}))

        rejection = reject_blocked_user(make_draft("TROLL"), state, ctx)

        assert isinstance(rejection, PolicyRejection)
        assert rejection.rule == "blocked_user"

    def test_other_users_pass(self, make_draft, ctx):
        state = QueueState(blocked_users=frozenset({"troll"}))

        assert reject_blocked_user(make_draft("Friend"), state, ctx) is None


class TestBlacklistRule:
    @pytest.mark.parametrize(
        ("kind", "title", "channel", "rejected"),
        [
            (BlacklistKind.SONG, "Baby Shark Dance", None, True),
            (BlacklistKind.SONG, "Something Else", "Baby Shark Channel", False),
            (BlacklistKind.ARTIST, "Something Else", "Baby Shark Channel", True),
            (BlacklistKind.ARTIST, "Baby Shark Dance", "Pinkfong", False),
            (BlacklistKind.KEYWORD, "Something Else", "baby shark tv", True),
            (BlacklistKind.KEYWORD, "BABY SHARK", None, True),
        ],
    )
    def test_match_by_kind(self, make_draft, ctx, kind, title, channel, rejected):
        """Terms match case-insensitively against title, channel or both."""
        state = QueueState(blacklist=(BlacklistEntry(term="baby shark", kind=kind),))
        draft = make_draft(title=title, channel_name=channel)

        assert (reject_blacklisted(draft, state, ctx) is not None) is rejected


class TestDurationRule:
    def test_unknown_duration_passes(self, make_draft, ctx):
        assert reject_too_long(make_draft(duration_seconds=None), QueueState(), ctx) is None

    def test_per_type_limits(self, make_draft, ctx):
        """Channel-point requests have a tighter limit than donations."""
        state = QueueState()
        draft_cp = make_draft(request_type=RequestType.CHANNEL_POINTS, duration_seconds=400)
        draft_donation = make_draft(request_type=RequestType.DONATION, duration_seconds=400)

        assert reject_too_long(draft_cp, state, ctx).rule == "duration"
        assert reject_too_long(draft_donation, state, ctx) is None

    def test_operator_limit_tightens(self, make_draft, ctx):
        state = QueueState(settings=RuntimeSettings(max_duration_minutes=3))

        rejection = reject_too_long(make_draft(duration_seconds=200), state, ctx)

        assert rejection is not None
        assert "3:00" in rejection.message

    def test_operator_limit_never_loosens(self, make_draft):
        ctx = PolicyContext(now=NOW, limits=DurationLimits(donation_max_s=120))
        state = QueueState(settings=RuntimeSettings(max_duration_minutes=60))

        assert reject_too_long(make_draft(duration_seconds=200), state, ctx) is not None


class TestChannelPointRule:
    def test_second_channel_point_request_rejected(self, make_draft, ctx, queued):
        state = QueueState(queue=queued(make_draft("Alice", RequestType.CHANNEL_POINTS)))

        rejection = reject_second_channel_point_request(
            make_draft("alice", RequestType.CHANNEL_POINTS), state, ctx
        )

        assert rejection.rule == "channel_points_limit"

    def test_donation_not_limited(self, make_draft, ctx, queued):
        state = QueueState(queue=queued(make_draft("Alice", RequestType.CHANNEL_POINTS)))

        assert reject_second_channel_point_request(make_draft("Alice"), state, ctx) is None


class TestDuplicateRule:
    def test_duplicate_of_active_song(self, make_draft, ctx, queued):
        link = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        (active,) = queued(make_draft("Alice", song_link=link))
        state = QueueState(active_song=active)

        rejection = reject_duplicate(make_draft("Alice", song_link="https://youtu.be/dQw4w9WgXcQ"), state, ctx)

        assert rejection.rule == "duplicate"

    def test_same_song_other_requester_allowed(self, make_draft, ctx, queued):
        link = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        state = QueueState(queue=queued(make_draft("Alice", song_link=link)))

        assert reject_duplicate(make_draft("Bob", song_link=link), state, ctx) is None

    def test_history_only_counts_within_cooldown(self, make_draft, queued):
        link = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        history = queued(make_draft("Alice", song_link=link), completed_at=NOW - timedelta(minutes=10))
        state = QueueState(history=history)
        draft = make_draft("Alice", song_link=link)

        no_cooldown = PolicyContext(now=NOW)
        short = PolicyContext(now=NOW, duplicate_cooldown=timedelta(minutes=5))
        long = PolicyContext(now=NOW, duplicate_cooldown=timedelta(minutes=30))

        assert reject_duplicate(draft, state, no_cooldown) is None
        assert reject_duplicate(draft, state, short) is None
        assert reject_duplicate(draft, state, long) is not None


class TestRequestPolicy:
    def test_first_rejection_wins(self, make_draft):
        """A blocked user with a blacklisted song is reported as blocked."""
        state = QueueState(
            blocked_users=frozenset({"alice"}),
            blacklist=(BlacklistEntry(term="song", kind=BlacklistKind.SONG),),
        )

        with pytest.raises(PolicyRejection) as exc_info:
            RequestPolicy().check(make_draft("Alice"), state, NOW)

        assert exc_info.value.rule == "blocked_user"

    def test_channel_point_rule_can_be_disabled(self, make_draft, queued):
        policy = RequestPolicy(channel_points_one_in_queue=False)
        state = QueueState(queue=queued(make_draft("Alice", RequestType.CHANNEL_POINTS)))

        policy.check(make_draft("Alice", RequestType.CHANNEL_POINTS), state, NOW)

        assert reject_second_channel_point_request not in policy.rules

    def test_custom_rule(self, make_draft):
        def no_mondays(draft, state, ctx):
            if ctx.now.weekday() == 0:
                return PolicyRejection("monday")
            return None

        policy = RequestPolicy(rules=[no_mondays])
        monday = datetime(2024, 4, 29, 12, 0, tzinfo=UTC)

        with pytest.raises(PolicyRejection):
            policy.check(make_draft(), QueueState(), monday)
        policy.check(make_draft(), QueueState(), NOW)

    def test_allow_all_has_no_rules(self, make_draft):
        state = QueueState(blocked_users=frozenset({"alice"}))

        AllowAll().check(make_draft("Alice"), state, NOW)

        assert AllowAll().rules == ()
