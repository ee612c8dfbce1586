from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, String, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from fitpulse.core.database import Base
import uuid
from datetime import datetime, timezone

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    """
    Minimal user row. Profile CRUD belongs to the host application; the
    engine only needs an id to hang scores and unlocks off, and a body
    weight for calorie estimates.
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)
    display_name = Column(Text, nullable=True)
    weight_kg = Column(Float, nullable=True)

    score = relationship("UserScore", back_populates="user", uselist=False)
    goals = relationship("Goal", back_populates="user", lazy="dynamic")


class Goal(Base):
    """
    A user goal moving through not-started -> active -> completed, with
    paused reachable from active. See services.goal_lifecycle.
    """
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)  # weight, cardio, strength, flexibility, mental, nutrition

    target_value = Column(Float, nullable=False)
    current_value = Column(Float, nullable=False, default=0.0)
    unit = Column(String(50), nullable=False)
    target_date = Column(Date, nullable=True)

    status = Column(String(20), nullable=False, default="not-started")
    priority = Column(Integer, nullable=False, default=3)  # 1-5 scale (1=highest)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="goals")

    __table_args__ = (
        CheckConstraint(
            "status IN ('not-started', 'active', 'completed', 'paused')",
            name="ck_goals_status",
        ),
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_goals_priority"),
        Index("ix_goals_user_status", "user_id", "status"),
        Index("ix_goals_category_status", "category", "status"),
    )


class UserScore(Base):
    """
    One score record per user: points, level, goal streak and goal counters.

    Mutated only through services.score_ledger. Created lazily with zeroed
    fields (see UserScore.zeroed / score_ledger.get_or_create_score).
    """
    __tablename__ = "user_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Point System
    total_points = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    level_progress = Column(Integer, nullable=False, default=0)  # Points towards next level

    # Goal Streak
    current_streak = Column(Integer, nullable=False, default=0)
    best_streak = Column(Integer, nullable=False, default=0)
    streak_last_updated = Column(Date, nullable=True)

    # Goal Statistics
    goals_completed = Column(Integer, nullable=False, default=0)
    goals_created = Column(Integer, nullable=False, default=0)
    weekly_goals_completed = Column(Integer, nullable=False, default=0)
    monthly_goals_completed = Column(Integer, nullable=False, default=0)
    weekly_period_start = Column(Date, nullable=True)  # Monday of the counted week
    monthly_period_start = Column(Date, nullable=True)  # 1st of the counted month

    achievements_unlocked = Column(Integer, nullable=False, default=0)

    # Flexible milestone values (sessions, calories, engagement streaks...)
    milestone_data = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="score")

    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_user_scores_level_positive"),
        Index("ix_user_scores_points_level", "total_points", "level"),
        Index("ix_user_scores_current_streak", "current_streak"),
    )

    @classmethod
    def zeroed(cls, user_id) -> "UserScore":
        """Build an unsaved record with every counter at its starting value."""
        return cls(
            user_id=user_id,
            total_points=0,
            level=1,
            level_progress=0,
            current_streak=0,
            best_streak=0,
            streak_last_updated=None,
            goals_completed=0,
            goals_created=0,
            weekly_goals_completed=0,
            monthly_goals_completed=0,
            weekly_period_start=None,
            monthly_period_start=None,
            achievements_unlocked=0,
            milestone_data={},
        )


class Achievement(Base):
    """Achievement definition. Catalog rows are immutable at runtime."""
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False)  # Stable identifier for code references
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    icon = Column(String(50), nullable=True)

    points = Column(Integer, nullable=False, default=10)  # Awarded on unlock
    category = Column(String(20), nullable=False, default="goals")  # goals, streak, progress, milestone, special
    rarity = Column(String(20), nullable=False, default="common")  # common, rare, epic, legendary

    # {requirement_kind: target}; see services.achievement_engine
    requirements = Column(JSONType, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    unlocks = relationship("UserAchievement", back_populates="achievement", lazy="dynamic")

    __table_args__ = (
        CheckConstraint(
            "rarity IN ('common', 'rare', 'epic', 'legendary')",
            name="ck_achievements_rarity",
        ),
        Index("ix_achievements_category_active", "category", "is_active"),
    )


class UserAchievement(Base):
    """
    Unlock record. At most one per (user, achievement), written once.
    The unique constraint is what makes concurrent awards safe.
    """
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_id = Column(Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)

    unlocked_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    points_earned = Column(Integer, nullable=False, default=0)
    progress_data = Column(JSONType, nullable=False, default=dict)

    achievement = relationship("Achievement", back_populates="unlocks")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
