"""
Calorie Estimation Service

MET-based energy expenditure:
    calories = MET × difficulty multiplier × weight(kg) × time(hours)

MET values follow the Compendium of Physical Activities. Everything else in
this module (per-minute rates, intensity estimates, session breakdowns,
weekly targets) is expressed through the same formula.

Invalid inputs never raise: non-positive duration or weight degrade to a
flat ~5 kcal/min estimate.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


# MET values for exercise types, body parts and intensity levels.
# Order matters: substring fallback returns the first key that matches.
MET_VALUES: Dict[str, float] = {
    # Strength Training
    'general': 6.0,
    'strength': 6.0,
    'weight_lifting': 6.0,
    'bodyweight': 5.0,
    'resistance': 5.5,

    # Cardiovascular
    'cardio': 8.0,
    'running': 12.0,
    'cycling': 8.5,
    'swimming': 11.0,
    'walking': 4.0,
    'jogging': 7.0,

    # High Intensity
    'hiit': 10.0,
    'circuit': 8.0,
    'crossfit': 9.0,
    'tabata': 12.0,
    'interval': 9.5,

    # Flexibility & Recovery
    'flexibility': 3.0,
    'yoga': 3.0,
    'pilates': 4.0,
    'stretching': 2.5,
    'mobility': 3.0,

    # Body parts (mapped to strength work)
    'chest': 6.0,
    'back': 6.0,
    'legs': 8.0,
    'shoulders': 5.0,
    'arms': 5.0,
    'abs': 4.0,
    'core': 5.0,
    'glutes': 6.0,
    'biceps': 5.0,
    'triceps': 5.0,
    'quads': 8.0,
    'hamstrings': 8.0,
    'calves': 6.0,

    # Intensity levels
    'light': 4.0,
    'moderate': 6.0,
    'vigorous': 8.0,
    'very_vigorous': 12.0,
}

DEFAULT_EXERCISE_TYPE = 'general'

DIFFICULTY_MULTIPLIERS: Dict[str, float] = {
    'beginner': 0.8,
    'intermediate': 1.0,
    'advanced': 1.3,
}

DEFAULT_DIFFICULTY = 'intermediate'

# Afterburn (EPOC) bonus for interval-style work
HIIT_FAMILY = frozenset({'hiit', 'interval', 'tabata', 'circuit'})
HIIT_AFTERBURN_FACTOR = 1.10

SHORT_SESSION_MINUTES = 10
SHORT_SESSION_FACTOR = 0.95
LONG_SESSION_MINUTES = 90
LONG_SESSION_FACTOR = 0.95  # applied to the minutes past LONG_SESSION_MINUTES

FALLBACK_CALORIES_PER_MINUTE = 5

# Exercise timing defaults
SECONDS_PER_REP = 3
DEFAULT_REPS = 10
DEFAULT_REST_SECONDS = 60

# kcal per kg of body weight per week, by fitness goal
WEEKLY_TARGET_FACTORS: Dict[str, Dict[str, Any]] = {
    'weight_loss': {'factor': 35, 'description': 'Progressive weight loss'},
    'maintenance': {'factor': 20, 'description': 'Maintain current fitness'},
    'muscle_gain': {'factor': 25, 'description': 'Muscle mass gain'},
}

INTENSITY_LEVELS = ('light', 'moderate', 'vigorous', 'very_vigorous')


def _round_half_up(value: float) -> int:
    """Round .5 away from zero (calorie counts are never banker-rounded)."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def _normalize(value: Optional[str]) -> str:
    return (value or '').strip().lower()


def _fallback_calories(duration_minutes: float) -> int:
    return max(1, _round_half_up(duration_minutes * FALLBACK_CALORIES_PER_MINUTE))


def get_met_value(exercise_type: Optional[str]) -> float:
    """
    Look up the MET value for an exercise type.

    Exact match on the normalized name first, then a substring match in
    either direction ("trail running" -> running, "run" -> running),
    then the 'general' default.
    """
    normalized = _normalize(exercise_type)

    if normalized in MET_VALUES:
        return MET_VALUES[normalized]

    if normalized:
        for key, value in MET_VALUES.items():
            if key in normalized or normalized in key:
                return value

    return MET_VALUES[DEFAULT_EXERCISE_TYPE]


def get_difficulty_multiplier(difficulty: Optional[str]) -> float:
    return DIFFICULTY_MULTIPLIERS.get(
        _normalize(difficulty),
        DIFFICULTY_MULTIPLIERS[DEFAULT_DIFFICULTY]
    )


def _apply_additional_factors(base_calories: float, exercise_type: str, duration_minutes: float) -> float:
    """
    Post-formula adjustments.

    - HIIT family: +10% afterburn.
    - Under 10 minutes: -5% (warm-up dominated).
    - Over 90 minutes: minutes past the 90th are charged at 95% (fatigue).
      Only the overflow is discounted so the estimate never drops when a
      session gets longer.
    """
    calories = base_calories

    if _normalize(exercise_type) in HIIT_FAMILY:
        calories *= HIIT_AFTERBURN_FACTOR

    if duration_minutes < SHORT_SESSION_MINUTES:
        calories *= SHORT_SESSION_FACTOR

    if duration_minutes > LONG_SESSION_MINUTES:
        per_minute = calories / duration_minutes
        overflow = duration_minutes - LONG_SESSION_MINUTES
        calories = per_minute * LONG_SESSION_MINUTES + per_minute * overflow * LONG_SESSION_FACTOR

    return calories


def calculate(
    duration_minutes: float,
    weight_kg: float,
    exercise_type: str = DEFAULT_EXERCISE_TYPE,
    difficulty: str = DEFAULT_DIFFICULTY,
) -> int:
    """
    Calculate calories burned using the MET formula.

    Args:
        duration_minutes: Session length in minutes
        weight_kg: Body weight in kilograms
        exercise_type: Exercise type, body part or intensity level name
        difficulty: beginner | intermediate | advanced

    Returns:
        Calories as an integer, never below 1.

    Examples:
        >>> calculate(60, 70, 'running', 'intermediate')
        840
    """
    if duration_minutes <= 0 or weight_kg <= 0:
        logger.warning(
            f"Invalid input for calorie calculation: duration={duration_minutes}, weight={weight_kg}"
        )
        return _fallback_calories(duration_minutes)

    met_value = get_met_value(exercise_type)
    multiplier = get_difficulty_multiplier(difficulty)

    calories = met_value * multiplier * weight_kg * (duration_minutes / 60)
    calories = _apply_additional_factors(calories, exercise_type, duration_minutes)

    final_calories = max(1, _round_half_up(calories))

    logger.debug(
        f"Calorie calculation: {duration_minutes}min {weight_kg}kg type={exercise_type} "
        f"difficulty={difficulty} met={met_value} x{multiplier} -> {final_calories}"
    )
    return final_calories


def calculate_exercise_time(exercise: Mapping[str, Any]) -> int:
    """
    Estimate the minutes one exercise takes, rest included.

    Time-based exercises use `duration_seconds` (or legacy `duration`) per
    set; rep-based ones assume 3 seconds per rep. Rest is added between sets.
    """
    sets = exercise.get('sets') or 1

    if exercise.get('duration_seconds') is not None:
        time_per_set = exercise['duration_seconds'] / 60
    elif exercise.get('duration') is not None:
        time_per_set = exercise['duration'] / 60
    else:
        reps = exercise.get('reps') or DEFAULT_REPS
        time_per_set = (reps * SECONDS_PER_REP) / 60

    total_time = time_per_set * sets

    rest_seconds = DEFAULT_REST_SECONDS
    for rest_key in ('rest_time_seconds', 'restTime', 'rest_time'):
        if exercise.get(rest_key) is not None:
            rest_seconds = exercise[rest_key]
            break

    if sets > 1:
        total_time += ((sets - 1) * rest_seconds) / 60

    return max(1, _round_half_up(total_time))


def calculate_for_workout(
    exercises: Iterable[Mapping[str, Any]],
    weight_kg: float,
    total_duration_minutes: float,
    default_difficulty: str = DEFAULT_DIFFICULTY,
) -> int:
    """
    Calories for a workout made of several exercises.

    Each exercise is estimated on its own (type from `body_part`, then
    `category`); session time not covered by the exercises is charged at the
    'general' MET.
    """
    exercises = list(exercises or [])
    if not exercises:
        return calculate(total_duration_minutes, weight_kg, DEFAULT_EXERCISE_TYPE, default_difficulty)

    total_calories = 0
    total_exercise_time = 0

    for exercise in exercises:
        exercise_time = calculate_exercise_time(exercise)
        total_exercise_time += exercise_time

        exercise_type = exercise.get('body_part') or exercise.get('category') or DEFAULT_EXERCISE_TYPE
        difficulty = exercise.get('difficulty') or default_difficulty

        total_calories += calculate(exercise_time, weight_kg, exercise_type, difficulty)

    if total_exercise_time < total_duration_minutes:
        remaining = total_duration_minutes - total_exercise_time
        total_calories += calculate(remaining, weight_kg, DEFAULT_EXERCISE_TYPE, default_difficulty)

    return total_calories


def get_calories_per_minute(
    weight_kg: float,
    exercise_type: str = DEFAULT_EXERCISE_TYPE,
    difficulty: str = DEFAULT_DIFFICULTY,
) -> float:
    """Unadjusted burn rate: MET × multiplier × weight / 60."""
    if weight_kg <= 0:
        return 0.0
    return (get_met_value(exercise_type) * get_difficulty_multiplier(difficulty) * weight_kg) / 60


def calculate_intensity(total_calories: float, duration_minutes: float) -> str:
    """Classify a session by its calories-per-minute rate."""
    if duration_minutes <= 0:
        return 'unknown'

    calories_per_minute = total_calories / duration_minutes

    if calories_per_minute >= 12:
        return 'high'
    elif calories_per_minute >= 8:
        return 'medium'
    return 'low'


def get_exercise_types() -> Dict[str, float]:
    return dict(MET_VALUES)


def get_calorie_estimates(duration_minutes: float, weight_kg: float) -> Dict[str, Dict[str, Any]]:
    """Estimates for the same session across the four intensity levels."""
    estimates = {}
    for intensity in INTENSITY_LEVELS:
        estimates[intensity] = {
            'intensity': intensity.replace('_', ' ').capitalize(),
            'calories': calculate(duration_minutes, weight_kg, intensity),
            'calories_per_minute': round(get_calories_per_minute(weight_kg, intensity), 2),
        }
    return estimates


def calculate_target_calories(goal: str, weight_kg: float, sessions_per_week: int = 3) -> Dict[str, Any]:
    """
    Weekly and per-session exercise calorie targets for a fitness goal.

    Unknown goals fall back to maintenance.
    """
    target = WEEKLY_TARGET_FACTORS.get(_normalize(goal), WEEKLY_TARGET_FACTORS['maintenance'])
    weekly_calories = weight_kg * target['factor']
    sessions = max(1, sessions_per_week)

    return {
        'weekly_calories': weekly_calories,
        'per_session': _round_half_up(weekly_calories / sessions),
        'sessions_per_week': sessions,
        'description': target['description'],
    }


def estimate_session_calories(
    total_duration_minutes: float,
    exercise_categories: List[str],
    weight_kg: float,
    difficulty: str = DEFAULT_DIFFICULTY,
) -> Dict[str, Any]:
    """
    Session estimate with a per-category breakdown.

    The duration is split evenly across categories; each share goes through
    `calculate` on its own.
    """
    categories = list(exercise_categories) or [DEFAULT_EXERCISE_TYPE]
    duration_per_category = total_duration_minutes / len(categories)

    breakdown: Dict[str, Dict[str, Any]] = {}
    total_calories = 0

    for category in categories:
        category_calories = calculate(duration_per_category, weight_kg, category, difficulty)
        breakdown[category] = {
            'duration_minutes': duration_per_category,
            'calories': category_calories,
            'calories_per_minute': (
                round(category_calories / duration_per_category, 1) if duration_per_category > 0 else 0
            ),
        }
        total_calories += category_calories

    return {
        'total_calories': total_calories,
        'total_duration': total_duration_minutes,
        'average_calories_per_minute': (
            round(total_calories / total_duration_minutes, 1) if total_duration_minutes > 0 else 0
        ),
        'breakdown': breakdown,
        'intensity': calculate_intensity(total_calories, total_duration_minutes),
    }
