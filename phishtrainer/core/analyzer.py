"""
HeuristicAnalyzer: flag scanning, score aggregation and reason ranking
composed into a single analysis of one email.
"""

import hashlib
import logging
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from phishtrainer.core.flag_scanner import FlagScanner
from phishtrainer.core.risk_scorer import ReasonRanker, ScoreAggregator
from phishtrainer.schemas import AnalysisResult

logger = logging.getLogger(__name__)


class HeuristicAnalyzer:
    def __init__(self, scanner: FlagScanner = None,
                 aggregator: ScoreAggregator = None,
                 ranker: ReasonRanker = None):
        self.scanner = scanner or FlagScanner()
        self.aggregator = aggregator or ScoreAggregator()
        self.ranker = ranker or ReasonRanker()

    def analyze(self, subject: str, body_markup: str,
                sender_email: Optional[str] = None,
                sender_name: Optional[str] = None) -> AnalysisResult:
        flags = self.scanner.scan(subject, body_markup, sender_email, sender_name)
        score = self.aggregator.phish_score(flags)
        return AnalysisResult(
            flags=flags,
            flag_keys=[flag.key for flag in flags],
            phish_score=score,
            difficulty=self.aggregator.difficulty_for(score),
            top_reasons=self.ranker.top_reasons(flags),
        )

    def backfill(self, subject: str, body_markup: str,
                 sender_email: Optional[str], sender_name: Optional[str],
                 features: Optional[Sequence[str]],
                 difficulty: Optional[int]) -> Tuple[List[str], int]:
        """
        Fill in missing features and difficulty from the heuristics.

        Features become the top-reason labels when absent or empty; difficulty
        becomes the score bucket when absent. Values already present are kept.
        The analysis only runs when something is missing.
        """
        if features and difficulty is not None:
            return list(features), difficulty

        result = self.analyze(subject, body_markup, sender_email, sender_name)
        filled_features = list(features) if features else [r.label for r in result.top_reasons]
        filled_difficulty = difficulty if difficulty is not None else result.difficulty
        return filled_features, filled_difficulty


_default_analyzer = HeuristicAnalyzer()


def analyze(subject: str, body_markup: str,
            sender_email: Optional[str] = None,
            sender_name: Optional[str] = None) -> AnalysisResult:
    """Analyze one email with the default rule table."""
    return _default_analyzer.analyze(subject, body_markup, sender_email, sender_name)


def content_fingerprint(subject: str, body_markup: str,
                        sender_email: Optional[str] = None,
                        sender_name: Optional[str] = None) -> str:
    """Stable hash of everything the analysis reads."""
    raw = "\x1f".join([subject, body_markup, sender_email or "", sender_name or ""])
    return hashlib.sha256(raw.encode("utf-8", errors="replace")).hexdigest()


class AnalysisMemo:
    """
    Memoized analyses keyed by item id.

    An entry is valid only for the content it was computed from: a lookup
    whose content fingerprint differs recomputes and replaces the entry.
    """

    def __init__(self, analyzer: HeuristicAnalyzer = None):
        self.analyzer = analyzer or _default_analyzer
        self._entries: Dict[Hashable, Tuple[str, AnalysisResult]] = {}

    def get(self, item_id: Hashable, subject: str, body_markup: str,
            sender_email: Optional[str] = None,
            sender_name: Optional[str] = None) -> AnalysisResult:
        fingerprint = content_fingerprint(subject, body_markup, sender_email, sender_name)
        cached = self._entries.get(item_id)
        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        if cached is not None:
            logger.debug("Content of item %s changed, recomputing analysis", item_id)
        result = self.analyzer.analyze(subject, body_markup, sender_email, sender_name)
        self._entries[item_id] = (fingerprint, result)
        return result

    def invalidate(self, item_id: Hashable) -> bool:
        return self._entries.pop(item_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, item_id: Hashable) -> bool:
        return item_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
