"""
Point and streak bookkeeping for one answered training email.
"""

from typing import Tuple

from phishtrainer.schemas import DIFFICULTY_LABELS, ProfileSnapshot

STREAK_BONUS_EVERY = 5


def points_for(difficulty: int, correct: bool, new_streak: int) -> int:
    """
    Points earned for a guess.

    Nothing for a wrong answer; otherwise the difficulty tier (1, 2 or 3)
    plus one bonus point on every fifth consecutive correct answer.
    """
    if difficulty not in DIFFICULTY_LABELS:
        raise ValueError(f"Unknown difficulty tier: {difficulty!r}")
    if not correct:
        return 0

    bonus = 1 if new_streak > 0 and new_streak % STREAK_BONUS_EVERY == 0 else 0
    return difficulty + bonus


def apply_guess(snapshot: ProfileSnapshot, difficulty: int, correct: bool) -> Tuple[ProfileSnapshot, int]:
    """Return the updated snapshot and the points delta; the input is not modified"""
    if not correct:
        return snapshot.model_copy(update={"streak": 0}), 0

    new_streak = snapshot.streak + 1
    delta = points_for(difficulty, True, new_streak)

    level = DIFFICULTY_LABELS[difficulty]
    per_level = snapshot.per_difficulty_correct.model_copy(
        update={level: getattr(snapshot.per_difficulty_correct, level) + 1}
    )
    updated = snapshot.model_copy(update={
        "points": snapshot.points + delta,
        "streak": new_streak,
        "per_difficulty_correct": per_level,
    })
    return updated, delta
