"""
Progress Summary

Host-side aggregation of a user's gamification state: score, rank, goal
streak, workout engagement, maintenance prediction and milestones.

Workout history is not stored by this package. It is read through an
ActivityLogProvider supplied by the host.

Aggregates are memoized in Redis under per-user keys and dropped by
core.cache.invalidate_user_progress_cache after every mutating call.
"""
import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union
from uuid import UUID

from sqlalchemy.orm import Session

from fitpulse.core.cache import cached, invalidate_user_progress_cache
from fitpulse.core.config import settings
from fitpulse.services import achievement_engine, engagement_streaks, score_ledger
from fitpulse.services.goal_lifecycle import completed_counts_by_category, get_user

logger = logging.getLogger(__name__)


class ActivityLogProvider(Protocol):
    """Read-only access to a user's completed workouts."""

    def completion_timestamps(self, user_id: UUID) -> Sequence[Union[date, datetime]]:
        ...

    def total_calories(self, user_id: UUID) -> float:
        ...


def sync_engagement_milestones(
    db: Session,
    user_id: UUID,
    provider: ActivityLogProvider,
    today: Optional[date] = None,
) -> List:
    """
    Push workout-derived milestones into the score record.

    Call after a workout is completed. Writes sessions_completed,
    engagement_streak, longest_engagement_streak and calories_burned, then
    runs the achievement check. Returns the newly unlocked achievements.
    """
    get_user(db, user_id)

    timestamps = list(provider.completion_timestamps(user_id))
    streak = engagement_streaks.calculate_engagement_streak(timestamps, today)

    score = score_ledger.get_or_create_score(db, user_id, lock=True)
    score_ledger.record_milestone(score, 'sessions_completed', len(timestamps))
    score_ledger.record_milestone(score, 'engagement_streak', streak.current)
    score_ledger.record_milestone(score, 'longest_engagement_streak', streak.longest)
    score_ledger.record_milestone(score, 'calories_burned', int(provider.total_calories(user_id) or 0))
    db.flush()

    new_achievements = achievement_engine.check_all_for_user(
        db, user_id, category_counts=completed_counts_by_category(db, user_id)
    )
    invalidate_user_progress_cache(user_id)

    logger.debug(
        f"Synced engagement milestones for user {user_id}: "
        f"{len(timestamps)} sessions, streak {streak.current}"
    )
    return new_achievements


@cached("engagement_stats", key_params=("user_id",))
def get_engagement_stats(
    user_id: UUID,
    provider: ActivityLogProvider,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Consistency stats for the user's workouts (cached)."""
    return engagement_streaks.calculate_consistency_stats(
        provider.completion_timestamps(user_id), today
    ).to_dict()


@cached("achievement_progress", key_params=("user_id",))
def get_achievement_progress(db: Session, user_id: UUID) -> List[Dict[str, Any]]:
    """Catalog with unlock state and per-requirement progress (cached)."""
    get_user(db, user_id)
    return achievement_engine.list_achievements_with_progress(
        db, user_id, category_counts=completed_counts_by_category(db, user_id)
    )


def _build_summary(
    db: Session,
    user_id: UUID,
    provider: ActivityLogProvider,
    today: Optional[date],
) -> Dict[str, Any]:
    score = score_ledger.get_or_create_score(db, user_id)
    goal_streak = score_ledger.get_goal_streak(score)
    weekly_completed, monthly_completed = score_ledger.period_goal_counts(score, today)

    timestamps = list(provider.completion_timestamps(user_id))
    total_calories = provider.total_calories(user_id) or 0
    engagement = engagement_streaks.calculate_consistency_stats(timestamps, today)
    maintenance = engagement_streaks.predict_streak_maintenance(
        engagement.consistency_percentage, engagement.current_streak
    )
    next_milestone = engagement_streaks.get_overall_next_milestone(
        len(timestamps), engagement.current_streak, total_calories
    )

    return {
        'user_id': str(user_id),
        'total_points': score.total_points,
        'level': score.level,
        'level_progress': score.level_progress,
        'next_level_points': score_ledger.get_next_level_points(score),
        'points_to_next_level': score_ledger.get_points_to_next_level(score),
        'rank': score_ledger.rank_for_user(db, user_id),
        'goals_completed': score.goals_completed,
        'goals_created': score.goals_created,
        'weekly_goals_completed': weekly_completed,
        'monthly_goals_completed': monthly_completed,
        'achievements_unlocked': score.achievements_unlocked,
        'goal_streak': {
            'current': goal_streak.current,
            'best': goal_streak.best,
            'last_updated': goal_streak.last_updated.isoformat() if goal_streak.last_updated else None,
        },
        'engagement': engagement.to_dict(),
        'maintenance': asdict(maintenance),
        'streak_milestones': engagement_streaks.get_streak_milestones(engagement.current_streak),
        'next_milestone': asdict(next_milestone) if next_milestone else None,
        'achieved_milestones': engagement_streaks.get_achieved_milestones(
            len(timestamps), engagement.current_streak, total_calories
        ),
    }


@cached("progress_summary", ttl=settings.CACHE_TTL_PROGRESS, key_params=("user_id",))
def get_progress_summary(
    db: Session,
    user_id: UUID,
    provider: ActivityLogProvider,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Everything the progress dashboard needs in one dict.

    Memoized under progress_summary:{user_id} for CACHE_TTL_PROGRESS seconds.
    """
    get_user(db, user_id)
    return _build_summary(db, user_id, provider, today)
