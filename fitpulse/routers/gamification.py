"""
Gamification API Router

Thin HTTP surface over the progress services: scores, leaderboard,
achievements, goal lifecycle and calorie estimates.

Authentication is the host application's concern; user ids arrive as path
parameters. Workout history comes from the host through the
get_activity_log dependency, which hosts override.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from fitpulse.core.config import settings
from fitpulse.core.database import get_db
from fitpulse.core.exceptions import ValidationError
from fitpulse.services import calorie_estimator, goal_lifecycle, progress_summary, score_ledger
from fitpulse.services.progress_summary import ActivityLogProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/gamification", tags=["gamification"])


class EmptyActivityLog:
    """Default provider for hosts that have not wired their workout log."""

    def completion_timestamps(self, user_id: UUID) -> Sequence[Union[date, datetime]]:
        return []

    def total_calories(self, user_id: UUID) -> float:
        return 0.0


def get_activity_log() -> ActivityLogProvider:
    return EmptyActivityLog()


# --- Request / Response Models ---

class ScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    total_points: int
    level: int
    level_progress: int
    current_streak: int
    best_streak: int
    streak_last_updated: Optional[date] = None
    goals_completed: int
    goals_created: int
    weekly_goals_completed: int
    monthly_goals_completed: int
    achievements_unlocked: int
    milestone_data: Dict[str, Any] = {}


class ScoreDetailResponse(ScoreResponse):
    next_level_points: int
    points_to_next_level: int
    rank: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: UUID
    total_points: int
    level: int
    current_streak: int


class RequirementProgress(BaseModel):
    current: float
    target: float
    met: bool
    percentage: float


class AchievementProgress(BaseModel):
    progress: int
    total: int
    percentage: float
    requirements: Dict[str, RequirementProgress] = {}


class AchievementResponse(BaseModel):
    key: str
    name: str
    description: str
    icon: Optional[str] = None
    points: int
    category: str
    rarity: str
    display: Dict[str, str]
    unlocked: bool
    unlocked_at: Optional[datetime] = None
    progress: AchievementProgress


class UnlockResponse(BaseModel):
    key: str
    name: str
    points_earned: int
    unlocked_at: datetime


class AchievementCheckResponse(BaseModel):
    new_achievements: List[UnlockResponse]
    total_points: int


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    target_value: float = Field(..., ge=0)
    unit: str = Field(..., min_length=1, max_length=50)
    category: Optional[str] = None
    description: Optional[str] = None
    target_date: Optional[date] = None
    priority: int = Field(default=3, ge=1, le=5)


class GoalProgressUpdate(BaseModel):
    value: Optional[float] = None
    increment: Optional[float] = None


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: UUID
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    target_value: float
    current_value: float
    unit: str
    target_date: Optional[date] = None
    status: str
    priority: int
    completed_at: Optional[datetime] = None
    progress_percentage: float = 0.0
    days_remaining: Optional[int] = None
    is_overdue: bool = False


class GoalCompletionResponse(BaseModel):
    goal: GoalResponse
    points_awarded: int
    new_achievements: List[UnlockResponse]


class ExerciseInput(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    body_part: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    sets: Optional[int] = None
    reps: Optional[int] = None
    duration_seconds: Optional[float] = None
    rest_time_seconds: Optional[float] = None


class CalorieEstimateRequest(BaseModel):
    duration_minutes: float
    weight_kg: Optional[float] = None
    exercise_type: str = calorie_estimator.DEFAULT_EXERCISE_TYPE
    difficulty: str = calorie_estimator.DEFAULT_DIFFICULTY
    exercises: List[ExerciseInput] = []


class CalorieEstimateResponse(BaseModel):
    calories: int
    calories_per_minute: float
    intensity: str
    weight_kg: float


# --- Helpers ---

def _goal_response(goal) -> GoalResponse:
    response = GoalResponse.model_validate(goal)
    response.progress_percentage = goal_lifecycle.progress_percentage(goal)
    response.days_remaining = goal_lifecycle.days_remaining(goal)
    response.is_overdue = goal_lifecycle.is_overdue(goal)
    return response


def _unlock_response(unlock) -> UnlockResponse:
    return UnlockResponse(
        key=unlock.achievement.key,
        name=unlock.achievement.name,
        points_earned=unlock.points_earned,
        unlocked_at=unlock.unlocked_at,
    )


# --- Score Endpoints ---

@router.get("/users/{user_id}/score", response_model=ScoreDetailResponse)
def get_score(user_id: UUID, db: Session = Depends(get_db)):
    """Score record with level progress and leaderboard rank."""
    goal_lifecycle.get_user(db, user_id)
    score = score_ledger.get_or_create_score(db, user_id)
    db.commit()

    weekly_completed, monthly_completed = score_ledger.period_goal_counts(score)
    fields = ScoreResponse.model_validate(score).model_dump()
    fields.update(
        weekly_goals_completed=weekly_completed,
        monthly_goals_completed=monthly_completed,
    )

    response = ScoreDetailResponse(
        **fields,
        next_level_points=score_ledger.get_next_level_points(score),
        points_to_next_level=score_ledger.get_points_to_next_level(score),
        rank=score_ledger.rank_for_user(db, user_id),
    )
    return response


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    entries = []
    for score in score_ledger.leaderboard(db, limit):
        entries.append(LeaderboardEntry(
            rank=score_ledger.rank_for_user(db, score.user_id),
            user_id=score.user_id,
            total_points=score.total_points,
            level=score.level,
            current_streak=score.current_streak,
        ))
    return entries


@router.get("/users/{user_id}/summary")
def get_summary(
    user_id: UUID,
    db: Session = Depends(get_db),
    activity_log: ActivityLogProvider = Depends(get_activity_log),
) -> Dict[str, Any]:
    """Dashboard aggregate: score, goal streak, workout engagement, milestones."""
    summary = progress_summary.get_progress_summary(db, user_id, activity_log)
    db.commit()
    return summary


# --- Achievement Endpoints ---

@router.get("/users/{user_id}/achievements", response_model=List[AchievementResponse])
def list_achievements(user_id: UUID, db: Session = Depends(get_db)):
    view = progress_summary.get_achievement_progress(db, user_id)
    db.commit()
    return view


@router.post("/users/{user_id}/achievements/check", response_model=AchievementCheckResponse)
def check_achievements(
    user_id: UUID,
    db: Session = Depends(get_db),
    activity_log: ActivityLogProvider = Depends(get_activity_log),
):
    """Sync workout milestones and award anything newly earned."""
    unlocks = progress_summary.sync_engagement_milestones(db, user_id, activity_log)
    score = score_ledger.get_or_create_score(db, user_id)
    db.commit()

    return AchievementCheckResponse(
        new_achievements=[_unlock_response(u) for u in unlocks],
        total_points=score.total_points,
    )


# --- Goal Endpoints ---

@router.post("/users/{user_id}/goals", response_model=GoalResponse, status_code=201)
def create_goal(user_id: UUID, goal_in: GoalCreate, db: Session = Depends(get_db)):
    goal = goal_lifecycle.create_goal(
        db,
        user_id,
        title=goal_in.title,
        target_value=goal_in.target_value,
        unit=goal_in.unit,
        category=goal_in.category,
        description=goal_in.description,
        target_date=goal_in.target_date,
        priority=goal_in.priority,
    )
    db.commit()
    return _goal_response(goal)


@router.post("/users/{user_id}/goals/{goal_id}/progress", response_model=GoalCompletionResponse)
def update_goal_progress(
    user_id: UUID,
    goal_id: int,
    update: GoalProgressUpdate,
    db: Session = Depends(get_db),
):
    """Set (`value`) or add to (`increment`) a goal's progress. Reaching the target completes it."""
    if (update.value is None) == (update.increment is None):
        raise ValidationError("Provide exactly one of 'value' or 'increment'", field="value")

    if update.value is not None:
        result = goal_lifecycle.update_progress(db, user_id, goal_id, update.value)
    else:
        result = goal_lifecycle.increment_progress(db, user_id, goal_id, update.increment)
    db.commit()

    return GoalCompletionResponse(
        goal=_goal_response(result.goal),
        points_awarded=result.points_awarded,
        new_achievements=[_unlock_response(u) for u in result.new_achievements],
    )


@router.post("/users/{user_id}/goals/{goal_id}/complete", response_model=GoalCompletionResponse)
def complete_goal(user_id: UUID, goal_id: int, db: Session = Depends(get_db)):
    result = goal_lifecycle.complete_goal(db, user_id, goal_id)
    db.commit()

    return GoalCompletionResponse(
        goal=_goal_response(result.goal),
        points_awarded=result.points_awarded,
        new_achievements=[_unlock_response(u) for u in result.new_achievements],
    )


@router.post("/users/{user_id}/goals/{goal_id}/pause", response_model=GoalResponse)
def pause_goal(user_id: UUID, goal_id: int, db: Session = Depends(get_db)):
    goal = goal_lifecycle.pause_goal(db, user_id, goal_id)
    db.commit()
    return _goal_response(goal)


@router.post("/users/{user_id}/goals/{goal_id}/activate", response_model=GoalResponse)
def activate_goal(user_id: UUID, goal_id: int, db: Session = Depends(get_db)):
    goal = goal_lifecycle.activate_goal(db, user_id, goal_id)
    db.commit()
    return _goal_response(goal)


@router.post("/users/{user_id}/goals/{goal_id}/reset", response_model=GoalResponse)
def reset_goal(user_id: UUID, goal_id: int, db: Session = Depends(get_db)):
    goal = goal_lifecycle.reset_goal(db, user_id, goal_id)
    db.commit()
    return _goal_response(goal)


# --- Calorie Estimates ---

@router.post("/calories/estimate", response_model=CalorieEstimateResponse)
def estimate_calories(request: CalorieEstimateRequest):
    """
    Estimate calories for a session.

    With `exercises` the per-exercise times are charged individually and any
    remaining session time is charged at the general MET value.
    """
    weight_kg = request.weight_kg
    if weight_kg is None:
        weight_kg = settings.DEFAULT_WEIGHT_KG

    if request.exercises:
        calories = calorie_estimator.calculate_for_workout(
            [e.model_dump(exclude_none=True) for e in request.exercises],
            weight_kg,
            request.duration_minutes,
            request.difficulty,
        )
    else:
        calories = calorie_estimator.calculate(
            request.duration_minutes,
            weight_kg,
            request.exercise_type,
            request.difficulty,
        )

    if request.duration_minutes > 0:
        per_minute = round(calories / request.duration_minutes, 1)
    else:
        per_minute = 0.0

    return CalorieEstimateResponse(
        calories=calories,
        calories_per_minute=per_minute,
        intensity=calorie_estimator.calculate_intensity(calories, request.duration_minutes),
        weight_kg=weight_kg,
    )
