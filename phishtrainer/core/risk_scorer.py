from typing import List, Sequence

from phishtrainer.schemas import Flag


class ScoreAggregator:
    def __init__(self):
        """
        Sum flag weights into a phish score and bucket it into a difficulty tier
        """
        # Upper bound (inclusive) of each tier; anything above the last is hard
        self.thresholds = {
            'easy': 2,
            'medium': 5
        }

    def phish_score(self, flags: Sequence[Flag]) -> int:
        return sum(flag.weight for flag in flags)

    def difficulty_for(self, phish_score: int) -> int:
        """Deterministic tier for a score: 1 (easy), 2 (medium) or 3 (hard)"""
        if phish_score <= self.thresholds['easy']:
            return 1
        elif phish_score <= self.thresholds['medium']:
            return 2
        else:
            return 3


class ReasonRanker:
    def __init__(self, min_reasons: int = 2, max_reasons: int = 4):
        if min_reasons < 0 or max_reasons < min_reasons:
            raise ValueError("Need 0 <= min_reasons <= max_reasons")
        self.min_reasons = min_reasons
        self.max_reasons = max_reasons

    def top_reasons(self, flags: Sequence[Flag]) -> List[Flag]:
        """
        Highest-weight flags first; equal weights keep detection order.
        Fewer flags than the minimum are returned as they are.
        """
        # sorted() is stable, so ties keep their original order
        ranked = sorted(flags, key=lambda flag: flag.weight, reverse=True)
        if len(ranked) < self.min_reasons:
            return ranked
        return ranked[:max(self.min_reasons, min(self.max_reasons, len(ranked)))]
