"""
Goal Lifecycle

Status machine for user goals and the orchestration around it:

    not-started -> active -> completed
                   active <-> paused
    any state   -> not-started (explicit reset)

The first transition into "completed" is the only place goal-completion
points are credited. Side effects (score updates, achievement checks, cache
invalidation) are explicit calls made here, never model hooks.

Functions flush but do not commit; the request scope owns the transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from fitpulse.core.cache import invalidate_user_progress_cache
from fitpulse.core.exceptions import (
    GoalNotActiveError,
    InvalidGoalTransition,
    NotFoundError,
    ValidationError,
)
from fitpulse.models import Goal, User, UserAchievement
from fitpulse.services import achievement_engine, score_ledger

logger = logging.getLogger(__name__)


class GoalStatus(str, Enum):
    NOT_STARTED = "not-started"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


ALLOWED_TRANSITIONS: Dict[GoalStatus, frozenset] = {
    GoalStatus.NOT_STARTED: frozenset({GoalStatus.ACTIVE, GoalStatus.COMPLETED}),
    GoalStatus.ACTIVE: frozenset({GoalStatus.COMPLETED, GoalStatus.PAUSED}),
    GoalStatus.PAUSED: frozenset({GoalStatus.ACTIVE}),
    GoalStatus.COMPLETED: frozenset(),
}


@dataclass
class GoalCompletionResult:
    goal: Goal
    points_awarded: int = 0
    new_achievements: List[UserAchievement] = field(default_factory=list)

    @property
    def newly_completed(self) -> bool:
        return self.points_awarded > 0


def _check_transition(goal: Goal, target: GoalStatus) -> None:
    current = GoalStatus(goal.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidGoalTransition(goal.id, current.value, target.value)


def _set_status(goal: Goal, target: GoalStatus) -> None:
    previous = goal.status
    goal.status = target.value
    logger.info(
        f"Goal {goal.id} (user {goal.user_id}): {previous} -> {target.value}",
        extra={
            "extra_fields": {
                "user_id": str(goal.user_id),
                "goal_id": goal.id,
                "from_status": previous,
                "to_status": target.value,
            }
        },
    )


# --- Lookups ---

def get_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", str(user_id))
    return user


def get_goal(db: Session, user_id: UUID, goal_id: int, lock: bool = False) -> Goal:
    """
    Fetch a goal owned by the user; other users' goals are reported as missing.

    `lock=True` takes a row lock and reloads the row, so status guards see the
    committed state and concurrent transitions on the same goal serialize.
    """
    stmt = select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    goal = db.execute(stmt).scalar_one_or_none()
    if goal is None:
        raise NotFoundError("Goal", str(goal_id), context={"user_id": str(user_id)})
    return goal


def completed_counts_by_category(db: Session, user_id: UUID) -> Dict[str, int]:
    """Completed goals per category, feeding the goals_in_category requirement."""
    rows = db.execute(
        select(Goal.category, func.count(Goal.id))
        .where(
            Goal.user_id == user_id,
            Goal.status == GoalStatus.COMPLETED.value,
            Goal.category.is_not(None),
        )
        .group_by(Goal.category)
    ).all()
    return {category: count for category, count in rows}


def _check_achievements(db: Session, user_id: UUID) -> List[UserAchievement]:
    return achievement_engine.check_all_for_user(
        db, user_id, category_counts=completed_counts_by_category(db, user_id)
    )


# --- Mutations ---

def create_goal(
    db: Session,
    user_id: UUID,
    title: str,
    target_value: float,
    unit: str,
    category: Optional[str] = None,
    description: Optional[str] = None,
    target_date: Optional[date] = None,
    priority: int = 3,
) -> Goal:
    """Create an active goal and credit the creation points."""
    get_user(db, user_id)

    if not title or not title.strip():
        raise ValidationError("Goal title must not be empty", field="title")
    if target_value < 0:
        raise ValidationError("Target value must not be negative", field="target_value")
    if not 1 <= priority <= 5:
        raise ValidationError("Priority must be between 1 and 5", field="priority")

    goal = Goal(
        user_id=user_id,
        title=title.strip(),
        description=description,
        category=category,
        target_value=target_value,
        current_value=0.0,
        unit=unit,
        target_date=target_date,
        status=GoalStatus.ACTIVE.value,
        priority=priority,
    )
    db.add(goal)
    db.flush()

    score = score_ledger.get_or_create_score(db, user_id, lock=True)
    score_ledger.increment_goals_created(score)
    db.flush()

    _check_achievements(db, user_id)
    invalidate_user_progress_cache(user_id)

    logger.info(
        f"Goal {goal.id} created for user {user_id}: {goal.title}",
        extra={"extra_fields": {"user_id": str(user_id), "goal_id": goal.id, "category": category}},
    )
    return goal


def complete_goal(
    db: Session,
    user_id: UUID,
    goal_id: int,
    today: Optional[date] = None,
) -> GoalCompletionResult:
    """
    Mark a goal completed, crediting points exactly once.

    Completing an already-completed goal returns a result with no points and
    no new achievements. A not-started goal is activated on the way.
    """
    goal = get_goal(db, user_id, goal_id, lock=True)
    return _complete(db, goal, today)


def _complete(db: Session, goal: Goal, today: Optional[date] = None) -> GoalCompletionResult:
    was_completed = goal.status == GoalStatus.COMPLETED.value
    if was_completed:
        logger.debug(f"Goal {goal.id} already completed; nothing to credit")
        return GoalCompletionResult(goal=goal)

    _check_transition(goal, GoalStatus.COMPLETED)

    goal.current_value = goal.target_value
    goal.completed_at = datetime.now(timezone.utc)
    _set_status(goal, GoalStatus.COMPLETED)
    db.flush()

    score = score_ledger.get_or_create_score(db, goal.user_id, lock=True)
    points_before = score.total_points
    score_ledger.increment_goals_completed(score, today)
    points_awarded = score.total_points - points_before
    db.flush()

    new_achievements = _check_achievements(db, goal.user_id)
    invalidate_user_progress_cache(goal.user_id)

    return GoalCompletionResult(
        goal=goal,
        points_awarded=points_awarded,
        new_achievements=new_achievements,
    )


def update_progress(
    db: Session,
    user_id: UUID,
    goal_id: int,
    value: float,
    today: Optional[date] = None,
) -> GoalCompletionResult:
    """
    Set the goal's current value.

    A not-started goal becomes active; reaching the target completes it.
    Paused and completed goals do not accept progress.
    """
    if value < 0:
        raise ValidationError("Progress value must not be negative", field="current_value")

    goal = get_goal(db, user_id, goal_id, lock=True)
    status = GoalStatus(goal.status)
    if status in (GoalStatus.PAUSED, GoalStatus.COMPLETED):
        raise GoalNotActiveError(goal.id, status.value)

    if status == GoalStatus.NOT_STARTED:
        _set_status(goal, GoalStatus.ACTIVE)

    goal.current_value = value
    db.flush()

    if is_achieved(goal):
        return _complete(db, goal, today)

    invalidate_user_progress_cache(user_id)
    return GoalCompletionResult(goal=goal)


def increment_progress(
    db: Session,
    user_id: UUID,
    goal_id: int,
    amount: float,
    today: Optional[date] = None,
) -> GoalCompletionResult:
    goal = get_goal(db, user_id, goal_id, lock=True)
    return update_progress(db, user_id, goal_id, goal.current_value + amount, today)


def activate_goal(db: Session, user_id: UUID, goal_id: int) -> Goal:
    goal = get_goal(db, user_id, goal_id, lock=True)
    if goal.status == GoalStatus.ACTIVE.value:
        return goal

    _check_transition(goal, GoalStatus.ACTIVE)
    _set_status(goal, GoalStatus.ACTIVE)
    db.flush()
    invalidate_user_progress_cache(user_id)
    return goal


def pause_goal(db: Session, user_id: UUID, goal_id: int) -> Goal:
    goal = get_goal(db, user_id, goal_id, lock=True)
    if goal.status == GoalStatus.PAUSED.value:
        return goal

    _check_transition(goal, GoalStatus.PAUSED)
    _set_status(goal, GoalStatus.PAUSED)
    db.flush()
    invalidate_user_progress_cache(user_id)
    return goal


def reset_goal(db: Session, user_id: UUID, goal_id: int) -> Goal:
    """Back to not-started with progress cleared. Points already credited stay."""
    goal = get_goal(db, user_id, goal_id, lock=True)

    goal.current_value = 0.0
    goal.completed_at = None
    _set_status(goal, GoalStatus.NOT_STARTED)
    db.flush()
    invalidate_user_progress_cache(user_id)
    return goal


# --- Derived views ---

def progress_percentage(goal: Goal) -> float:
    if not goal.target_value or goal.target_value <= 0:
        return 0.0
    return round(min(100.0, goal.current_value / goal.target_value * 100), 1)


def is_achieved(goal: Goal) -> bool:
    return goal.target_value > 0 and goal.current_value >= goal.target_value


def days_remaining(goal: Goal, today: Optional[date] = None) -> Optional[int]:
    if goal.target_date is None:
        return None
    today = today or date.today()
    return (goal.target_date - today).days


def is_overdue(goal: Goal, today: Optional[date] = None) -> bool:
    remaining = days_remaining(goal, today)
    return (
        remaining is not None
        and remaining < 0
        and goal.status != GoalStatus.COMPLETED.value
    )
