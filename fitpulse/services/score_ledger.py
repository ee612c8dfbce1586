"""
Score Ledger

Per-user point, level and goal-streak accounting on UserScore.

Levels: reaching level N+1 needs N × 100 points of progress accumulated at
level N. Each level-up pays a bonus of (new level × 50) straight into
total_points; the bonus never feeds level_progress, so it cannot trigger
further level-ups.

Goal streak: consecutive calendar days with at least one goal completion.
It is distinct from the workout engagement streak in
services.engagement_streaks.

The mutating functions change the record in place and return it; they do
no I/O. Persistence (and serializing concurrent writers per user) is the
caller's job: get_or_create_score locks the row with SELECT ... FOR UPDATE
on backends that support it.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fitpulse.core.config import settings
from fitpulse.models import UserScore

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100
LEVEL_UP_BONUS_PER_LEVEL = 50

GOAL_CREATED_POINTS = 5
GOAL_COMPLETED_BASE_POINTS = 20
STREAK_BONUS_PER_DAY = 2
STREAK_BONUS_CAP = 50

# (min goals completed, bonus), highest tier first
COMPLETION_MILESTONE_BONUSES = [
    (50, 30),
    (25, 20),
    (10, 10),
    (5, 5),
]


@dataclass
class GoalStreak:
    """Goal-completion streak snapshot (not the workout engagement streak)."""
    current: int
    best: int
    last_updated: Optional[date]


def level_threshold(level: int) -> int:
    """Progress points needed to leave `level`."""
    return level * POINTS_PER_LEVEL


def get_next_level_points(score: UserScore) -> int:
    return level_threshold(score.level)


def get_points_to_next_level(score: UserScore) -> int:
    return get_next_level_points(score) - score.level_progress


def add_points(score: UserScore, points: int, reason: str = "goal_completed") -> UserScore:
    """
    Credit points and settle any level-ups.

    Terminates because the threshold grows with every level. Afterwards
    level_progress < level_threshold(level) holds.
    """
    score.total_points += points
    score.level_progress += points

    while score.level_progress >= level_threshold(score.level):
        score.level_progress -= level_threshold(score.level)
        score.level += 1

        level_bonus = score.level * LEVEL_UP_BONUS_PER_LEVEL
        score.total_points += level_bonus

        logger.info(
            f"User {score.user_id} reached level {score.level} (+{level_bonus} bonus points)",
            extra={
                "extra_fields": {
                    "user_id": str(score.user_id),
                    "level": score.level,
                    "level_bonus": level_bonus,
                }
            },
        )

    logger.debug(f"User {score.user_id} +{points} points ({reason}); total={score.total_points}")
    return score


def update_streak(score: UserScore, today: Optional[date] = None) -> UserScore:
    """
    Advance the goal streak for a completion on `today`.

    At most one increment per calendar day; a missed day restarts at 1.
    best_streak never decreases.
    """
    today = today or date.today()
    last = score.streak_last_updated

    if last is None:
        score.current_streak = 1
    elif last == today:
        return score
    elif last == today - timedelta(days=1):
        score.current_streak += 1
    else:
        score.current_streak = 1

    score.best_streak = max(score.best_streak, score.current_streak)
    score.streak_last_updated = today
    return score


def milestone_bonus(goals_completed: int) -> int:
    for threshold, bonus in COMPLETION_MILESTONE_BONUSES:
        if goals_completed >= threshold:
            return bonus
    return 0


def calculate_goal_completion_points(score: UserScore) -> int:
    """Base 20 + streak bonus (2/day, max 50) + completed-goal milestone bonus."""
    streak_bonus = min(score.current_streak * STREAK_BONUS_PER_DAY, STREAK_BONUS_CAP)
    return GOAL_COMPLETED_BASE_POINTS + streak_bonus + milestone_bonus(score.goals_completed)


def _roll_period_counters(score: UserScore, today: date) -> None:
    """Restart weekly/monthly counters when `today` is in a new week/month."""
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    if score.weekly_period_start != week_start:
        score.weekly_goals_completed = 0
        score.weekly_period_start = week_start

    if score.monthly_period_start != month_start:
        score.monthly_goals_completed = 0
        score.monthly_period_start = month_start


def period_goal_counts(score: UserScore, today: Optional[date] = None) -> Tuple[int, int]:
    """
    (weekly, monthly) completions as of `today`.

    Windowed counters only roll on the next completion, so a stored count
    from an earlier week or month reads as 0 here. Accumulating counters
    are returned as stored.
    """
    weekly = score.weekly_goals_completed
    monthly = score.monthly_goals_completed
    if settings.GOAL_PERIOD_COUNTERS != "windowed":
        return weekly, monthly

    today = today or date.today()
    if score.weekly_period_start != today - timedelta(days=today.weekday()):
        weekly = 0
    if score.monthly_period_start != today.replace(day=1):
        monthly = 0
    return weekly, monthly


def increment_goals_created(score: UserScore) -> UserScore:
    score.goals_created += 1
    return add_points(score, GOAL_CREATED_POINTS, "goal_created")


def increment_goals_completed(score: UserScore, today: Optional[date] = None) -> UserScore:
    """
    Record one goal completion: counters, goal streak, then points.

    With GOAL_PERIOD_COUNTERS=windowed the weekly/monthly counters count
    completions in the current ISO week / calendar month only; with
    "accumulate" they grow forever.
    """
    today = today or date.today()

    score.goals_completed += 1

    if settings.GOAL_PERIOD_COUNTERS == "windowed":
        _roll_period_counters(score, today)
    score.weekly_goals_completed += 1
    score.monthly_goals_completed += 1

    update_streak(score, today)

    points = calculate_goal_completion_points(score)
    return add_points(score, points, "goal_completed")


def record_milestone(score: UserScore, name: str, value: float) -> UserScore:
    """Raise milestone_data[name] to `value`; milestones never go down."""
    data = dict(score.milestone_data or {})
    current = data.get(name, 0)
    if value > current:
        data[name] = value
        # Reassign so the JSON column is flagged dirty
        score.milestone_data = data
    return score


def get_goal_streak(score: UserScore) -> GoalStreak:
    return GoalStreak(
        current=score.current_streak,
        best=score.best_streak,
        last_updated=score.streak_last_updated,
    )


def get_user_ranking(scores: Iterable[UserScore], user_id: UUID) -> int:
    """1 + number of users with strictly more points; 0 if the user has no record."""
    scores = list(scores)
    mine = next((s for s in scores if s.user_id == user_id), None)
    if mine is None:
        return 0
    return 1 + sum(1 for s in scores if s.total_points > mine.total_points)


def get_top_users(scores: Iterable[UserScore], limit: int = 10) -> List[UserScore]:
    """Leaderboard order: points, then level, then current streak, all descending."""
    ordered = sorted(
        scores,
        key=lambda s: (s.total_points, s.level, s.current_streak),
        reverse=True,
    )
    return ordered[:max(0, limit)]


# --- Persistence helpers ---

def get_or_create_score(db: Session, user_id: UUID, lock: bool = False) -> UserScore:
    """
    Fetch the user's score, creating a zeroed one on first access.

    `lock=True` takes a row lock so concurrent completions for the same user
    serialize (no-op on SQLite), and reloads the row so counters read after
    the lock are the committed ones. Flush pending edits to the score first.
    """
    stmt = select(UserScore).where(UserScore.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    score = db.execute(stmt).scalar_one_or_none()
    if score is not None:
        return score

    score = UserScore.zeroed(user_id)
    try:
        with db.begin_nested():
            db.add(score)
    except IntegrityError:
        # Another request created it first
        logger.info(f"Score for user {user_id} created concurrently; reloading")
        score = db.execute(stmt).scalar_one()
    else:
        logger.debug(f"Created score record for user {user_id}")

    return score


def rank_for_user(db: Session, user_id: UUID) -> int:
    """SQL form of get_user_ranking."""
    score = db.execute(
        select(UserScore).where(UserScore.user_id == user_id)
    ).scalar_one_or_none()
    if score is None:
        return 0

    higher = db.execute(
        select(func.count(UserScore.id)).where(UserScore.total_points > score.total_points)
    ).scalar_one()
    return higher + 1


def leaderboard(db: Session, limit: int = 10) -> List[UserScore]:
    """SQL form of get_top_users."""
    return list(
        db.execute(
            select(UserScore)
            .order_by(
                UserScore.total_points.desc(),
                UserScore.level.desc(),
                UserScore.current_streak.desc(),
            )
            .limit(limit)
        ).scalars()
    )
