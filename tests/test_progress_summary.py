"""
Tests for engagement milestone sync and the cached progress summary.
"""
from datetime import date, timedelta
from uuid import uuid4

import pytest

from fitpulse.core.cache import invalidate_user_progress_cache
from fitpulse.core.exceptions import NotFoundError
from fitpulse.services import goal_lifecycle, progress_summary, score_ledger
from fitpulse.services.achievement_engine import get_unlocked_keys

TODAY = date(2024, 3, 15)


def last_n_days(n):
    return [TODAY - timedelta(days=i) for i in range(n)]


class TestSyncEngagementMilestones:
    def test_writes_milestones(self, db_session, test_user, activity_log):
        activity_log.timestamps = last_n_days(4) + [TODAY - timedelta(days=10)]
        activity_log.calories = 2400.7

        progress_summary.sync_engagement_milestones(db_session, test_user.id, activity_log, TODAY)

        score = score_ledger.get_or_create_score(db_session, test_user.id)
        assert score.milestone_data == {
            "sessions_completed": 5,
            "engagement_streak": 4,
            "longest_engagement_streak": 4,
            "calories_burned": 2400,
        }

    def test_milestones_never_go_down(self, db_session, test_user, activity_log):
        activity_log.timestamps = last_n_days(6)
        progress_summary.sync_engagement_milestones(db_session, test_user.id, activity_log, TODAY)

        # streak broken since
        later = TODAY + timedelta(days=5)
        progress_summary.sync_engagement_milestones(db_session, test_user.id, activity_log, later)

        score = score_ledger.get_or_create_score(db_session, test_user.id)
        assert score.milestone_data["engagement_streak"] == 6

    def test_unlocks_workout_achievements(self, db_session, test_user, catalog, activity_log):
        activity_log.timestamps = last_n_days(25)
        activity_log.calories = 10000

        unlocked = progress_summary.sync_engagement_milestones(db_session, test_user.id, activity_log, TODAY)

        keys = {u.achievement.key for u in unlocked}
        assert {"regular", "furnace"} <= keys
        assert {"regular", "furnace"} <= get_unlocked_keys(db_session, test_user.id)

    def test_unknown_user(self, db_session, activity_log):
        with pytest.raises(NotFoundError):
            progress_summary.sync_engagement_milestones(db_session, uuid4(), activity_log, TODAY)


class TestProgressSummary:
    def test_summary_contents(self, db_session, test_user, activity_log):
        activity_log.timestamps = last_n_days(3)
        activity_log.calories = 900

        summary = progress_summary.get_progress_summary(db_session, test_user.id, activity_log, TODAY)

        assert summary["user_id"] == str(test_user.id)
        assert summary["level"] == 1
        assert summary["points_to_next_level"] == 100
        assert summary["rank"] == 1
        assert summary["goal_streak"] == {"current": 0, "best": 0, "last_updated": None}
        assert summary["engagement"]["current_streak"] == 3
        assert summary["engagement"]["consistency_percentage"] == 10.0
        assert summary["maintenance"]["risk_level"] == "high"
        assert summary["next_milestone"]["type"] == "sessions"
        assert summary["next_milestone"]["target"] == 5
        assert summary["streak_milestones"]["next_milestone"] == 7

    def test_summary_reports_current_period_counts(self, db_session, test_user, activity_log):
        goal = goal_lifecycle.create_goal(db_session, test_user.id, title="Row 5 km", target_value=5, unit="km")
        # completed on Friday of the previous week
        goal_lifecycle.complete_goal(db_session, test_user.id, goal.id, today=TODAY - timedelta(days=7))

        summary = progress_summary.get_progress_summary(db_session, test_user.id, activity_log, TODAY)

        assert summary["goals_completed"] == 1
        assert summary["weekly_goals_completed"] == 0
        assert summary["monthly_goals_completed"] == 1

    def test_summary_is_cached_until_invalidated(self, db_session, test_user, activity_log, fake_redis):
        activity_log.timestamps = last_n_days(2)

        first = progress_summary.get_progress_summary(db_session, test_user.id, activity_log, TODAY)
        second = progress_summary.get_progress_summary(db_session, test_user.id, activity_log, TODAY)

        assert activity_log.reads == 1
        assert second == first
        assert fake_redis._ttls[f"progress_summary:{test_user.id}"] == 600

        invalidate_user_progress_cache(test_user.id)
        progress_summary.get_progress_summary(db_session, test_user.id, activity_log, TODAY)
        assert activity_log.reads == 2

    def test_engagement_stats_cached(self, test_user, activity_log, fake_redis):
        activity_log.timestamps = last_n_days(2)

        stats = progress_summary.get_engagement_stats(test_user.id, activity_log, TODAY)
        progress_summary.get_engagement_stats(test_user.id, activity_log, TODAY)

        assert stats["current_streak"] == 2
        assert activity_log.reads == 1
