"""
Difficulty-weighted choice of the next unseen training email.
"""

import random
from typing import Dict, Optional, Sequence, Union

from phishtrainer.core.analyzer import HeuristicAnalyzer
from phishtrainer.schemas import StoredItem

# Easier items are drawn more often
DIFFICULTY_WEIGHTS: Dict[int, int] = {1: 3, 2: 2, 3: 1}
UNKNOWN_DIFFICULTY_WEIGHT = DIFFICULTY_WEIGHTS[2]


class PoolExhausted:
    """Result signalling that the player has answered every item."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "POOL_EXHAUSTED"


POOL_EXHAUSTED = PoolExhausted()


def selection_weight(item: StoredItem) -> int:
    return DIFFICULTY_WEIGHTS.get(item.difficulty, UNKNOWN_DIFFICULTY_WEIGHT)


class SelectionPolicy:
    def __init__(self, rng: random.Random = None, analyzer: HeuristicAnalyzer = None):
        self.rng = rng or random.Random()
        self.analyzer = analyzer or HeuristicAnalyzer()

    def draw(self, pool: Sequence[StoredItem]) -> Optional[StoredItem]:
        """One item, with probability proportional to its difficulty weight. None if empty."""
        if not pool:
            return None
        weights = [selection_weight(item) for item in pool]
        return self.rng.choices(pool, weights=weights, k=1)[0]

    def backfill(self, item: StoredItem) -> StoredItem:
        """Copy of the item with heuristic features/difficulty filled in; the item is untouched."""
        if not item.needs_backfill:
            return item
        features, difficulty = self.analyzer.backfill(
            item.subject, item.body_markup, item.sender_email, item.sender_name,
            item.features, item.difficulty,
        )
        return item.model_copy(update={"features": features, "difficulty": difficulty})

    def select_next(self, pool: Sequence[StoredItem]) -> Union[StoredItem, PoolExhausted]:
        chosen = self.draw(pool)
        if chosen is None:
            return POOL_EXHAUSTED
        return self.backfill(chosen)


def select_next(pool: Sequence[StoredItem], rng: random.Random = None,
                analyzer: HeuristicAnalyzer = None) -> Union[StoredItem, PoolExhausted]:
    """Draw the next item from a player's unseen pool, or POOL_EXHAUSTED."""
    return SelectionPolicy(rng, analyzer).select_next(pool)
