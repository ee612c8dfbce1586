"""
Achievement Engine

Evaluates achievement requirements against a user's score and awards
unlocks exactly once.

Requirements are a mapping of requirement kind -> target, all of which must
hold (logical AND). Each kind is resolved through REQUIREMENTS, a registry
of evaluator functions; adding a kind means registering one function:

    @REQUIREMENTS.register("workouts_logged")
    def _workouts_logged(value, score, category_counts):
        return RequirementReading(current=..., target=value)

Unknown kinds evaluate to "not met" and are logged, never raised.

Awarding is idempotent per (user, achievement). The existence check is
backed by the uq_user_achievement constraint: a concurrent duplicate insert
fails inside a SAVEPOINT and the already-stored unlock is returned instead.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fitpulse.models import Achievement, UserAchievement, UserScore
from fitpulse.services import score_ledger
from fitpulse.services.achievement_catalog import rarity_display

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequirementReading:
    """Where a user stands on one requirement."""
    current: float
    target: float

    @property
    def met(self) -> bool:
        return self.current >= self.target

    @property
    def percentage(self) -> float:
        if self.target <= 0:
            return 0.0
        return round(min(100.0, self.current / self.target * 100), 1)


RequirementEvaluator = Callable[[Any, UserScore, Mapping[str, int]], RequirementReading]


class RequirementRegistry:
    """Maps requirement kinds to evaluator functions."""

    def __init__(self):
        self._evaluators: Dict[str, RequirementEvaluator] = {}

    def register(self, kind: str) -> Callable[[RequirementEvaluator], RequirementEvaluator]:
        def decorator(evaluator: RequirementEvaluator) -> RequirementEvaluator:
            if kind in self._evaluators:
                logger.warning(f"Overwriting requirement evaluator: {kind}")
            self._evaluators[kind] = evaluator
            return evaluator
        return decorator

    def get(self, kind: str) -> Optional[RequirementEvaluator]:
        return self._evaluators.get(kind)

    def kinds(self) -> List[str]:
        return sorted(self._evaluators)

    def __contains__(self, kind: str) -> bool:
        return kind in self._evaluators


REQUIREMENTS = RequirementRegistry()

# Requirement kinds that compare a UserScore counter against a number
SCORE_FIELD_REQUIREMENTS = (
    'goals_completed',
    'goals_created',
    'current_streak',
    'best_streak',
    'total_points',
    'level',
    'weekly_goals_completed',
    'monthly_goals_completed',
    'achievements_unlocked',
)

PERFECT_WEEK_DAYS = 7


def _as_number(value: Any) -> float:
    """
    Coerce a catalog target or stored counter to a number.

    Numeric strings are accepted; anything else non-numeric raises TypeError
    or ValueError, which read_requirement reports as a malformed requirement.
    """
    if isinstance(value, bool) or value is None or isinstance(value, Mapping):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    if isinstance(value, (int, float)):
        return value
    return float(value)


def _score_field_evaluator(field: str) -> RequirementEvaluator:
    def evaluate(value, score, category_counts):
        return RequirementReading(current=getattr(score, field) or 0, target=_as_number(value))
    evaluate.__name__ = f"_evaluate_{field}"
    return evaluate


for _field in SCORE_FIELD_REQUIREMENTS:
    REQUIREMENTS.register(_field)(_score_field_evaluator(_field))


@REQUIREMENTS.register('goals_in_category')
def _goals_in_category(value, score, category_counts):
    """{"category": "cardio", "count": 5} against caller-supplied completed-goal counts."""
    return RequirementReading(
        current=category_counts.get(value['category'], 0),
        target=_as_number(value['count']),
    )


@REQUIREMENTS.register('milestone_progress')
def _milestone_progress(value, score, category_counts):
    """{"milestone": "calories_burned", "target": 10000} against milestone_data."""
    milestone_data = score.milestone_data or {}
    return RequirementReading(
        current=_as_number(milestone_data.get(value['milestone'], 0)),
        target=_as_number(value['target']),
    )


@REQUIREMENTS.register('perfect_week')
def _perfect_week(value, score, category_counts):
    """N weeks of daily goal completions, read off the goal streak."""
    weeks = 1 if value is True else int(_as_number(value))
    return RequirementReading(current=score.current_streak, target=weeks * PERFECT_WEEK_DAYS)


def _declared_target(value: Any) -> float:
    """Best-effort target for display when a requirement cannot be evaluated."""
    if isinstance(value, Mapping):
        return value.get('count', value.get('target', 1))
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return value
    return 1


def read_requirement(
    kind: str,
    value: Any,
    score: UserScore,
    category_counts: Optional[Mapping[str, int]] = None,
) -> Optional[RequirementReading]:
    """
    Evaluate one requirement. None means it cannot be evaluated (unknown
    kind or malformed target); both are logged as anomalies.
    """
    evaluator = REQUIREMENTS.get(kind)
    if evaluator is None:
        logger.warning(f"Unknown achievement requirement kind '{kind}'; treating as unmet")
        return None

    try:
        return evaluator(value, score, category_counts or {})
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed achievement requirement {kind}={value!r}: {e}; treating as unmet")
        return None


def check_requirements(
    definition: Achievement,
    score: UserScore,
    category_counts: Optional[Mapping[str, int]] = None,
) -> bool:
    """True iff the definition is active, has requirements, and all are met."""
    if not definition.is_active or not definition.requirements:
        return False

    for kind, value in definition.requirements.items():
        reading = read_requirement(kind, value, score, category_counts)
        if reading is None or not reading.met:
            return False

    return True


def get_user_progress(
    definition: Achievement,
    score: UserScore,
    category_counts: Optional[Mapping[str, int]] = None,
) -> Dict[str, Any]:
    """
    Per-requirement progress plus the share of requirements already met.

    Returns:
        {"progress": met_count, "total": n, "percentage": met_count / n * 100,
         "requirements": {kind: {"current", "target", "met", "percentage"}}}
    """
    requirements = definition.requirements or {}
    if not requirements:
        return {'progress': 0, 'total': 1, 'percentage': 0.0, 'requirements': {}}

    details: Dict[str, Dict[str, Any]] = {}
    met_count = 0

    for kind, value in requirements.items():
        reading = read_requirement(kind, value, score, category_counts)
        if reading is None:
            details[kind] = {
                'current': 0,
                'target': _declared_target(value),
                'met': False,
                'percentage': 0.0,
            }
            continue

        details[kind] = {
            'current': reading.current,
            'target': reading.target,
            'met': reading.met,
            'percentage': reading.percentage,
        }
        if reading.met:
            met_count += 1

    total = len(requirements)
    return {
        'progress': met_count,
        'total': total,
        'percentage': round(met_count / total * 100, 1) if total > 0 else 0.0,
        'requirements': details,
    }


# --- Persistence ---

def _find_unlock(db: Session, user_id: UUID, achievement_id: int) -> Optional[UserAchievement]:
    return db.execute(
        select(UserAchievement).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        )
    ).scalar_one_or_none()


def _award(
    db: Session,
    user_id: UUID,
    definition: Achievement,
    progress_data: Optional[Dict[str, Any]] = None,
) -> Tuple[UserAchievement, bool]:
    """Award once; returns (unlock, created)."""
    existing = _find_unlock(db, user_id, definition.id)
    if existing is not None:
        return existing, False

    unlock = UserAchievement(
        user_id=user_id,
        achievement_id=definition.id,
        unlocked_at=datetime.now(timezone.utc),
        points_earned=definition.points,
        progress_data=progress_data or {},
    )

    try:
        with db.begin_nested():
            db.add(unlock)
    except IntegrityError:
        logger.info(
            f"Concurrent unlock of '{definition.key}' for user {user_id}; returning stored record"
        )
        return _find_unlock(db, user_id, definition.id), False

    score = score_ledger.get_or_create_score(db, user_id)
    score_ledger.add_points(score, definition.points, f"achievement:{definition.key}")
    score.achievements_unlocked += 1
    db.flush()

    logger.info(
        f"User {user_id} unlocked '{definition.key}' (+{definition.points} points)",
        extra={
            "extra_fields": {
                "user_id": str(user_id),
                "achievement": definition.key,
                "rarity": definition.rarity,
                "points": definition.points,
            }
        },
    )
    return unlock, True


def award_to_user(
    db: Session,
    user_id: UUID,
    definition: Achievement,
    progress_data: Optional[Dict[str, Any]] = None,
) -> UserAchievement:
    """
    Unlock `definition` for the user, crediting its points once.

    Calling again (or concurrently) returns the stored unlock unchanged.
    """
    unlock, _ = _award(db, user_id, definition, progress_data)
    return unlock


def load_active_definitions(db: Session) -> List[Achievement]:
    return list(
        db.execute(
            select(Achievement)
            .where(Achievement.is_active.is_(True))
            .order_by(Achievement.sort_order, Achievement.name)
        ).scalars()
    )


def get_unlocked_keys(db: Session, user_id: UUID) -> Set[str]:
    return set(
        db.execute(
            select(Achievement.key)
            .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
        ).scalars()
    )


def check_all_for_user(
    db: Session,
    user_id: UUID,
    definitions: Optional[Iterable[Achievement]] = None,
    already_unlocked_keys: Optional[Iterable[str]] = None,
    category_counts: Optional[Mapping[str, int]] = None,
) -> List[UserAchievement]:
    """
    Award every active, not-yet-unlocked achievement whose requirements hold.

    Definitions are evaluated in catalog order against the live score, so
    points from an earlier unlock count toward later ones in the same pass.

    Returns only the unlocks created by this call.
    """
    if definitions is None:
        definitions = load_active_definitions(db)
    unlocked = set(already_unlocked_keys) if already_unlocked_keys is not None else get_unlocked_keys(db, user_id)

    score = score_ledger.get_or_create_score(db, user_id)
    newly_unlocked: List[UserAchievement] = []

    for definition in definitions:
        if not definition.is_active or definition.key in unlocked:
            continue
        if not check_requirements(definition, score, category_counts):
            continue

        snapshot = get_user_progress(definition, score, category_counts)
        progress_data = {kind: detail['current'] for kind, detail in snapshot['requirements'].items()}

        unlock, created = _award(db, user_id, definition, progress_data)
        unlocked.add(definition.key)
        if created:
            newly_unlocked.append(unlock)

    if newly_unlocked:
        logger.info(f"User {user_id} unlocked {len(newly_unlocked)} new achievement(s)")
    return newly_unlocked


def list_achievements_with_progress(
    db: Session,
    user_id: UUID,
    category_counts: Optional[Mapping[str, int]] = None,
) -> List[Dict[str, Any]]:
    """Catalog view for one user: definition, unlock state, progress, display attributes."""
    score = score_ledger.get_or_create_score(db, user_id)
    unlocks = {
        u.achievement_id: u
        for u in db.execute(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        ).scalars()
    }

    view = []
    for definition in load_active_definitions(db):
        unlock = unlocks.get(definition.id)
        view.append({
            'key': definition.key,
            'name': definition.name,
            'description': definition.description,
            'icon': definition.icon,
            'points': definition.points,
            'category': definition.category,
            'rarity': definition.rarity,
            'display': rarity_display(definition.rarity),
            'unlocked': unlock is not None,
            'unlocked_at': unlock.unlocked_at if unlock else None,
            'progress': get_user_progress(definition, score, category_counts),
        })
    return view
