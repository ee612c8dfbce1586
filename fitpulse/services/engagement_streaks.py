"""
Engagement Streak Service

"Consistency is the leading indicator of success."

Computes the *engagement* streak: consecutive calendar days with at least one
completed workout, plus consistency windows, milestones and a simple
maintenance prediction.

This is a different concept from the *goal* streak kept on UserScore by
services.score_ledger (consecutive days with a goal completion). The two are
never merged.

All functions are pure: the caller supplies activity timestamps (from an
ActivityLogProvider) and `today`.
"""
import calendar
import logging
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

WEEKLY_GOAL_DAYS = 3
MONTHLY_GOAL_DAYS = 12
DEFAULT_CONSISTENCY_WINDOW_DAYS = 30

SESSION_MILESTONES = [1, 5, 10, 25, 50, 100, 250, 500, 1000]
STREAK_MILESTONES = [3, 7, 14, 30, 60, 100, 365]
CALORIE_MILESTONES = [1000, 5000, 10000, 25000, 50000]

# Reached-milestone lists stop short of the top tiers
ACHIEVED_SESSION_MILESTONES = [1, 5, 10, 25, 50, 100, 250, 500]
ACHIEVED_STREAK_MILESTONES = [3, 7, 14, 30, 60, 100]

STREAK_LEVELS = [
    (365, 'legendary'),
    (100, 'epic'),
    (30, 'gold'),
    (14, 'silver'),
    (7, 'bronze'),
    (3, 'copper'),
]

# (min probability, risk level)
RISK_TIERS = [
    (75, 'low'),
    (50, 'medium'),
]

# (min streak days, probability bonus); bonuses stack
STREAK_MAINTENANCE_BONUSES = [
    (7, 10),
    (14, 5),
    (30, 5),
]

MAINTENANCE_RECOMMENDATIONS = [
    (80, "Excellent consistency! Keep up the great work."),
    (60, "Good momentum! Try to establish a regular schedule."),
    (40, "You're building habits! Consider setting workout reminders."),
]
DEFAULT_RECOMMENDATION = "Focus on consistency over intensity. Start with shorter, more frequent workouts."


@dataclass
class EngagementStreak:
    """Workout-activity streak (not the goal streak)."""
    current: int
    longest: int
    level: str


@dataclass
class Milestone:
    type: str
    target: int
    current: float
    remaining: float
    progress: float  # percent toward target


@dataclass
class MaintenancePrediction:
    probability: int
    risk_level: str
    recommendation: str


@dataclass
class ConsistencyStats:
    current_streak: int
    longest_streak: int
    workouts_this_month: int
    weekly_consistency: List[Dict[str, Any]] = field(default_factory=list)
    monthly_consistency: List[Dict[str, Any]] = field(default_factory=list)
    streak_level: str = 'beginner'
    consistency_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def activity_days(timestamps: Iterable[DateLike]) -> List[date]:
    """Distinct calendar days, ascending."""
    return sorted({_as_date(ts) for ts in timestamps if ts is not None})


def calculate_current_streak(timestamps: Iterable[DateLike], today: Optional[date] = None) -> int:
    """
    Consecutive active days ending today or yesterday.

    A streak survives until the end of the day after the last workout: if
    the most recent activity day is older than yesterday, the streak is 0.
    Future-dated activity is ignored.
    """
    today = today or date.today()
    days = [d for d in activity_days(timestamps) if d <= today]
    if not days:
        return 0

    days.reverse()  # most recent first
    gap = (today - days[0]).days
    if gap > 1:
        return 0

    streak = 0
    check_date = today if gap == 0 else today - timedelta(days=1)

    for day in days:
        if day == check_date:
            streak += 1
            check_date -= timedelta(days=1)
        else:
            break

    return streak


def calculate_longest_streak(timestamps: Iterable[DateLike]) -> int:
    """Longest run of consecutive active days anywhere in the history."""
    days = activity_days(timestamps)
    if not days:
        return 0

    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if (current - previous).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    return longest


def calculate_consistency_percentage(
    timestamps: Iterable[DateLike],
    window_days: int = DEFAULT_CONSISTENCY_WINDOW_DAYS,
    today: Optional[date] = None,
) -> float:
    """
    Share of the last `window_days` days (today included) with activity.

    Rounded to 1 decimal, always within [0, 100]. A non-positive window is 0.
    """
    if window_days <= 0:
        return 0.0

    today = today or date.today()
    window_start = today - timedelta(days=window_days - 1)
    active = sum(1 for d in activity_days(timestamps) if window_start <= d <= today)

    percentage = round(active / window_days * 100, 1)
    return min(100.0, max(0.0, percentage))


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _shift_months(day: date, months: int) -> date:
    """First day of the month `months` before `day`'s month."""
    month_index = day.year * 12 + (day.month - 1) - months
    return date(month_index // 12, month_index % 12 + 1, 1)


def calculate_weekly_consistency(
    timestamps: Iterable[DateLike],
    today: Optional[date] = None,
    weeks: int = 4,
    goal_days: int = WEEKLY_GOAL_DAYS,
) -> List[Dict[str, Any]]:
    """
    Active days per Monday-Sunday week for the last `weeks` weeks, oldest first.
    """
    today = today or date.today()
    days = activity_days(timestamps)
    current_week = _week_start(today)

    buckets = []
    for offset in range(weeks - 1, -1, -1):
        start = current_week - timedelta(weeks=offset)
        end = start + timedelta(days=6)
        count = sum(1 for d in days if start <= d <= end)
        buckets.append({
            'week_start': start.isoformat(),
            'week_end': end.isoformat(),
            'workouts': count,
            'goal_met': count >= goal_days,
        })
    return buckets


def calculate_monthly_consistency(
    timestamps: Iterable[DateLike],
    today: Optional[date] = None,
    months: int = 12,
    goal_days: int = MONTHLY_GOAL_DAYS,
) -> List[Dict[str, Any]]:
    """
    Active days per calendar month for the last `months` months, oldest first.
    """
    today = today or date.today()
    days = activity_days(timestamps)

    buckets = []
    for offset in range(months - 1, -1, -1):
        start = _shift_months(today, offset)
        last_day = calendar.monthrange(start.year, start.month)[1]
        end = start.replace(day=last_day)
        count = sum(1 for d in days if start <= d <= end)
        buckets.append({
            'month': start.strftime('%Y-%m'),
            'month_name': start.strftime('%B %Y'),
            'workouts': count,
            'goal_met': count >= goal_days,
        })
    return buckets


def get_streak_level(streak: int) -> str:
    for threshold, level in STREAK_LEVELS:
        if streak >= threshold:
            return level
    return 'beginner'


def next_milestone(current_value: float, thresholds: Sequence[int], milestone_type: str = 'custom') -> Optional[Milestone]:
    """
    First threshold above `current_value`, or None when all are reached.

    `thresholds` must be ascending.
    """
    for target in thresholds:
        if current_value < target:
            return Milestone(
                type=milestone_type,
                target=target,
                current=current_value,
                remaining=target - current_value,
                progress=round(current_value / target * 100, 1) if target > 0 else 0.0,
            )
    return None


def get_streak_milestones(current_streak: int) -> Dict[str, Any]:
    """
    Next streak milestone with progress measured from the previous one.

    At a 10-day streak the next milestone is 14 and progress is
    (10 - 7) / (14 - 7) = 42.9%.
    """
    next_target = None
    progress = 0.0
    previous = 0

    for target in STREAK_MILESTONES:
        if current_streak < target:
            next_target = target
            span = target - previous
            progress = (current_streak - previous) / span * 100 if span > 0 else 0.0
            break
        previous = target

    return {
        'current_streak': current_streak,
        'next_milestone': next_target,
        'progress_to_next': round(progress, 1),
        'achieved_milestones': [m for m in STREAK_MILESTONES if current_streak >= m],
    }


def get_achieved_milestones(total_sessions: int, current_streak: int, total_calories: float) -> List[Dict[str, Any]]:
    """Every session, streak and calorie milestone already reached."""
    achieved = []

    for value in ACHIEVED_SESSION_MILESTONES:
        if total_sessions >= value:
            achieved.append({'type': 'sessions', 'value': value, 'achieved': True,
                             'title': f"{value} sessions completed"})

    for value in ACHIEVED_STREAK_MILESTONES:
        if current_streak >= value:
            achieved.append({'type': 'streak', 'value': value, 'achieved': True,
                             'title': f"{value} consecutive days"})

    for value in CALORIE_MILESTONES:
        if total_calories >= value:
            achieved.append({'type': 'calories', 'value': value, 'achieved': True,
                             'title': f"{value} calories burned"})

    return achieved


def get_upcoming_milestones(total_sessions: int, current_streak: int, total_calories: float) -> List[Milestone]:
    """Next unmet milestone of each kind (sessions, streak, calories)."""
    candidates = [
        next_milestone(total_sessions, SESSION_MILESTONES, 'sessions'),
        next_milestone(current_streak, STREAK_MILESTONES, 'streak'),
        next_milestone(total_calories, CALORIE_MILESTONES, 'calories'),
    ]
    return [m for m in candidates if m is not None]


def get_overall_next_milestone(total_sessions: int, current_streak: int, total_calories: float) -> Optional[Milestone]:
    """The upcoming milestone with the fewest units remaining."""
    upcoming = get_upcoming_milestones(total_sessions, current_streak, total_calories)
    if not upcoming:
        return None
    # min() keeps the first of equal candidates (sessions before streak before calories)
    return min(upcoming, key=lambda m: m.remaining)


def _maintenance_recommendation(probability: float) -> str:
    for threshold, text in MAINTENANCE_RECOMMENDATIONS:
        if probability >= threshold:
            return text
    return DEFAULT_RECOMMENDATION


def predict_streak_maintenance(consistency_percentage: float, current_streak: int) -> MaintenancePrediction:
    """
    Heuristic probability that the current streak survives.

    Base = consistency × 1.2 (capped at 100), plus stacking bonuses for
    7/14/30-day streaks, clamped to [0, 100].
    """
    probability = min(100.0, consistency_percentage * 1.2)

    for min_streak, bonus in STREAK_MAINTENANCE_BONUSES:
        if current_streak >= min_streak:
            probability += bonus

    probability = min(100.0, max(0.0, probability))

    risk_level = 'high'
    for threshold, level in RISK_TIERS:
        if probability >= threshold:
            risk_level = level
            break

    return MaintenancePrediction(
        probability=int(round(probability)),
        risk_level=risk_level,
        recommendation=_maintenance_recommendation(probability),
    )


def calculate_engagement_streak(timestamps: Iterable[DateLike], today: Optional[date] = None) -> EngagementStreak:
    days = activity_days(timestamps)
    current = calculate_current_streak(days, today)
    return EngagementStreak(
        current=current,
        longest=calculate_longest_streak(days),
        level=get_streak_level(current),
    )


def calculate_consistency_stats(timestamps: Iterable[DateLike], today: Optional[date] = None) -> ConsistencyStats:
    """Everything the progress dashboard shows about workout consistency."""
    today = today or date.today()
    stamps = [ts for ts in timestamps if ts is not None]
    days = activity_days(stamps)

    month_window_start = today - timedelta(days=DEFAULT_CONSISTENCY_WINDOW_DAYS)
    workouts_this_month = sum(1 for ts in stamps if month_window_start <= _as_date(ts) <= today)

    current = calculate_current_streak(days, today)

    return ConsistencyStats(
        current_streak=current,
        longest_streak=calculate_longest_streak(days),
        workouts_this_month=workouts_this_month,
        weekly_consistency=calculate_weekly_consistency(days, today),
        monthly_consistency=calculate_monthly_consistency(days, today),
        streak_level=get_streak_level(current),
        consistency_percentage=calculate_consistency_percentage(days, DEFAULT_CONSISTENCY_WINDOW_DAYS, today),
    )
