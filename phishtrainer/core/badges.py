"""
Badge system.

Badges unlock once a profile metric reaches a threshold: cumulative points,
the current streak, or correct answers at one difficulty level. Earned
badges are never taken away, even when the metric later drops (a streak
reset, for instance).
"""

from typing import Iterable, Optional, Sequence, Tuple

from phishtrainer.schemas import (
    Badge,
    BadgeProgress,
    NextBadge,
    ProfileSnapshot,
    RequirementType,
)

DEFAULT_BADGES: Tuple[Badge, ...] = (
    Badge(id='first_steps', name='First Steps', description='Earned your first 5 points',
          icon='🌱', requirement_type=RequirementType.POINTS, threshold=5),
    Badge(id='hot_streak', name='Hot Streak', description='5 correct answers in a row',
          icon='🔥', requirement_type=RequirementType.STREAK, threshold=5),
    Badge(id='easy_spotter', name='Easy Spotter', description='10 easy emails judged correctly',
          icon='👀', requirement_type=RequirementType.CORRECT_AT_LEVEL, threshold=10, level='easy'),
    Badge(id='getting_started', name='Getting Started', description='Reached 25 points',
          icon='⭐', requirement_type=RequirementType.POINTS, threshold=25),
    Badge(id='no_click_ninja', name='No-Click Ninja', description='10 correct answers in a row',
          icon='🥷', requirement_type=RequirementType.STREAK, threshold=10),
    Badge(id='sharp_eye', name='Sharp Eye', description='10 medium emails judged correctly',
          icon='🎯', requirement_type=RequirementType.CORRECT_AT_LEVEL, threshold=10, level='medium'),
    Badge(id='phish_detector', name='Phish Detector', description='Achieved 50 points',
          icon='🔍', requirement_type=RequirementType.POINTS, threshold=50),
    Badge(id='deep_diver', name='Deep Diver', description='10 hard emails judged correctly',
          icon='🤿', requirement_type=RequirementType.CORRECT_AT_LEVEL, threshold=10, level='hard'),
    Badge(id='security_expert', name='Security Expert', description='Reached 100 points',
          icon='🛡️', requirement_type=RequirementType.POINTS, threshold=100),
    Badge(id='cyber_guardian', name='Cyber Guardian', description='Earned 250 points',
          icon='👑', requirement_type=RequirementType.POINTS, threshold=250),
    Badge(id='phishing_master', name='Phishing Master', description='Achieved 500 points',
          icon='🏆', requirement_type=RequirementType.POINTS, threshold=500),
    Badge(id='legend', name='Legend', description='Reached 1000 points',
          icon='🌟', requirement_type=RequirementType.POINTS, threshold=1000),
)

# Deprecated points-only table, kept as a subset of DEFAULT_BADGES
LEGACY_POINTS_BADGES: Tuple[Badge, ...] = tuple(
    badge for badge in DEFAULT_BADGES if badge.requirement_type == RequirementType.POINTS
)


def metric_for(badge: Badge, snapshot: ProfileSnapshot) -> int:
    """Current value of the snapshot field this badge is measured on"""
    if badge.requirement_type == RequirementType.POINTS:
        return snapshot.points
    if badge.requirement_type == RequirementType.STREAK:
        return snapshot.streak
    return getattr(snapshot.per_difficulty_correct, badge.level)


def is_earned(badge: Badge, snapshot: ProfileSnapshot) -> bool:
    return metric_for(badge, snapshot) >= badge.threshold


class BadgeEngine:
    def __init__(self, badges: Sequence[Badge] = DEFAULT_BADGES):
        ids = [badge.id for badge in badges]
        if len(ids) != len(set(ids)):
            raise ValueError("Badge ids must be unique")
        self.badges = tuple(badges)

    def evaluate(self, snapshot: ProfileSnapshot, earned_ids: Iterable[str] = ()) -> BadgeProgress:
        """
        Union newly earned badges into earned_ids and report the next one.

        Previously earned ids are kept as given (including ids not in this
        table); new ones are appended in table order.
        """
        earned = list(dict.fromkeys(earned_ids))
        already = set(earned)

        for badge in self.badges:
            if badge.id not in already and is_earned(badge, snapshot):
                earned.append(badge.id)
                already.add(badge.id)

        return BadgeProgress(earned_ids=earned, next_badge=self._next_badge(snapshot, already))

    def _next_badge(self, snapshot: ProfileSnapshot, earned: set) -> Optional[NextBadge]:
        for badge in self.badges:
            if badge.id in earned:
                continue
            current = metric_for(badge, snapshot)
            percent = round(100 * current / badge.threshold)
            return NextBadge(
                id=badge.id,
                current=current,
                target=badge.threshold,
                percent=max(0, min(100, percent)),
            )
        return None


def evaluate_badges(snapshot: ProfileSnapshot, earned_ids: Iterable[str] = (),
                    badges: Sequence[Badge] = DEFAULT_BADGES) -> BadgeProgress:
    return BadgeEngine(badges).evaluate(snapshot, earned_ids)
