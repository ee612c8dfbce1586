"""
Tests for the workout engagement streak calculations.
"""
from datetime import date, datetime, timedelta

import pytest

from fitpulse.services.engagement_streaks import (
    activity_days,
    calculate_consistency_percentage,
    calculate_consistency_stats,
    calculate_current_streak,
    calculate_engagement_streak,
    calculate_longest_streak,
    calculate_monthly_consistency,
    calculate_weekly_consistency,
    get_achieved_milestones,
    get_overall_next_milestone,
    get_streak_level,
    get_streak_milestones,
    get_upcoming_milestones,
    next_milestone,
    predict_streak_maintenance,
    SESSION_MILESTONES,
)

TODAY = date(2024, 3, 15)  # Friday


def days_ago(*offsets):
    return [TODAY - timedelta(days=n) for n in offsets]


class TestCurrentStreak:
    def test_three_consecutive_days_ending_today(self):
        assert calculate_current_streak(days_ago(0, 1, 2), TODAY) == 3

    def test_gap_breaks_streak(self):
        assert calculate_current_streak(days_ago(0, 3), TODAY) == 1

    def test_streak_survives_until_end_of_next_day(self):
        assert calculate_current_streak(days_ago(1, 2), TODAY) == 2

    def test_streak_lost_after_missed_day(self):
        assert calculate_current_streak(days_ago(2, 3, 4), TODAY) == 0

    def test_empty_history(self):
        assert calculate_current_streak([], TODAY) == 0

    def test_multiple_workouts_same_day_count_once(self):
        stamps = [
            datetime(2024, 3, 15, 7, 0),
            datetime(2024, 3, 15, 18, 30),
            datetime(2024, 3, 14, 12, 0),
        ]
        assert calculate_current_streak(stamps, TODAY) == 2

    def test_future_dates_ignored(self):
        assert calculate_current_streak([TODAY + timedelta(days=1), TODAY], TODAY) == 1


class TestLongestStreak:
    def test_longest_run_anywhere(self):
        assert calculate_longest_streak(days_ago(0, 1, 10, 11, 12, 20)) == 3

    def test_single_day(self):
        assert calculate_longest_streak(days_ago(5)) == 1

    def test_empty(self):
        assert calculate_longest_streak([]) == 0

    def test_activity_days_are_distinct_and_sorted(self):
        stamps = [datetime(2024, 3, 2, 9), date(2024, 3, 1), datetime(2024, 3, 2, 19), None]
        assert activity_days(stamps) == [date(2024, 3, 1), date(2024, 3, 2)]


class TestConsistency:
    def test_half_the_window(self):
        stamps = days_ago(*range(0, 30, 2))  # 15 days
        assert calculate_consistency_percentage(stamps, 30, TODAY) == 50.0

    def test_activity_outside_window_ignored(self):
        assert calculate_consistency_percentage(days_ago(30, 45), 30, TODAY) == 0.0

    def test_zero_window(self):
        assert calculate_consistency_percentage(days_ago(0), 0, TODAY) == 0.0

    @pytest.mark.parametrize("window", [1, 7, 30, 90])
    def test_always_within_bounds(self, window):
        stamps = days_ago(*range(0, 120))
        value = calculate_consistency_percentage(stamps, window, TODAY)
        assert 0.0 <= value <= 100.0
        assert value == 100.0

    def test_rounded_to_one_decimal(self):
        assert calculate_consistency_percentage(days_ago(0), 3, TODAY) == 33.3

    def test_weekly_buckets_oldest_first(self):
        stamps = [date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 13), date(2024, 3, 5)]
        buckets = calculate_weekly_consistency(stamps, TODAY, weeks=4)

        assert [b["week_start"] for b in buckets] == [
            "2024-02-19", "2024-02-26", "2024-03-04", "2024-03-11",
        ]
        assert buckets[-1] == {
            "week_start": "2024-03-11",
            "week_end": "2024-03-17",
            "workouts": 3,
            "goal_met": True,
        }
        assert buckets[-2]["workouts"] == 1
        assert buckets[-2]["goal_met"] is False

    def test_monthly_buckets(self):
        stamps = [date(2024, 3, d) for d in range(1, 13)] + [date(2023, 4, 30)]
        buckets = calculate_monthly_consistency(stamps, TODAY, months=12)

        assert len(buckets) == 12
        assert buckets[0]["month"] == "2023-04"
        assert buckets[0]["workouts"] == 1
        assert buckets[-1]["month"] == "2024-03"
        assert buckets[-1]["month_name"] == "March 2024"
        assert buckets[-1]["workouts"] == 12
        assert buckets[-1]["goal_met"] is True

    def test_monthly_buckets_cross_year(self):
        buckets = calculate_monthly_consistency([], date(2024, 1, 31), months=3)
        assert [b["month"] for b in buckets] == ["2023-11", "2023-12", "2024-01"]


class TestLevelsAndMilestones:
    @pytest.mark.parametrize("streak,level", [
        (0, "beginner"),
        (2, "beginner"),
        (3, "copper"),
        (7, "bronze"),
        (14, "silver"),
        (30, "gold"),
        (100, "epic"),
        (365, "legendary"),
    ])
    def test_streak_level(self, streak, level):
        assert get_streak_level(streak) == level

    def test_streak_milestones_progress_from_previous(self):
        result = get_streak_milestones(10)
        assert result["next_milestone"] == 14
        assert result["progress_to_next"] == 42.9
        assert result["achieved_milestones"] == [3, 7]

    def test_streak_milestones_all_reached(self):
        result = get_streak_milestones(400)
        assert result["next_milestone"] is None
        assert result["progress_to_next"] == 0.0
        assert result["achieved_milestones"][-1] == 365

    def test_next_milestone(self):
        milestone = next_milestone(0, SESSION_MILESTONES, "sessions")
        assert milestone.target == 1
        assert milestone.remaining == 1
        assert milestone.progress == 0.0

        assert next_milestone(5000, SESSION_MILESTONES) is None

    def test_achieved_milestones(self):
        achieved = get_achieved_milestones(12, 7, 1500)
        values = [(m["type"], m["value"]) for m in achieved]
        assert values == [
            ("sessions", 1), ("sessions", 5), ("sessions", 10),
            ("streak", 3), ("streak", 7),
            ("calories", 1000),
        ]

    def test_upcoming_milestones_one_per_kind(self):
        upcoming = get_upcoming_milestones(12, 7, 1500)
        assert [(m.type, m.target) for m in upcoming] == [
            ("sessions", 25), ("streak", 14), ("calories", 5000),
        ]

    def test_overall_next_milestone_fewest_remaining(self):
        milestone = get_overall_next_milestone(8, 6, 900)
        assert milestone.type == "streak"
        assert milestone.remaining == 1

    def test_overall_next_milestone_tie_prefers_sessions(self):
        milestone = get_overall_next_milestone(8, 5, 900)
        assert milestone.type == "sessions"


class TestMaintenancePrediction:
    def test_strong_consistency_with_long_streak(self):
        prediction = predict_streak_maintenance(70, 10)
        assert prediction.probability == 94
        assert prediction.risk_level == "low"
        assert prediction.recommendation.startswith("Excellent consistency")

    def test_medium_risk(self):
        prediction = predict_streak_maintenance(50, 0)
        assert prediction.probability == 60
        assert prediction.risk_level == "medium"
        assert prediction.recommendation.startswith("Good momentum")

    def test_no_activity(self):
        prediction = predict_streak_maintenance(0, 0)
        assert prediction.probability == 0
        assert prediction.risk_level == "high"
        assert "consistency over intensity" in prediction.recommendation

    def test_probability_capped(self):
        assert predict_streak_maintenance(100, 60).probability == 100


class TestAggregates:
    def test_engagement_streak(self):
        streak = calculate_engagement_streak(days_ago(0, 1, 2, 10, 11, 12, 13), TODAY)
        assert streak.current == 3
        assert streak.longest == 4
        assert streak.level == "copper"

    def test_consistency_stats(self):
        stamps = [datetime(2024, 3, 15, 8), datetime(2024, 3, 15, 19)] + days_ago(1, 2, 40)
        stats = calculate_consistency_stats(stamps, TODAY)

        assert stats.current_streak == 3
        assert stats.longest_streak == 3
        assert stats.workouts_this_month == 4
        assert len(stats.weekly_consistency) == 4
        assert len(stats.monthly_consistency) == 12
        assert stats.streak_level == "copper"
        assert stats.consistency_percentage == 10.0
        assert stats.to_dict()["current_streak"] == 3
