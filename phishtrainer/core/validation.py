"""
CandidateValidator: schema-checks generator output, sanitizes it and
backfills missing features/difficulty from the heuristics.
"""

import logging
import re
from typing import Any, List, Mapping, Sequence, Union

from pydantic import ValidationError

from phishtrainer.core.analyzer import HeuristicAnalyzer
from phishtrainer.schemas import CandidateItem, ValidatedItem, ValidationIssue, ValidationOutcome

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 20

_SCRIPT = re.compile(r'<script[^>]*>[\s\S]*?</script>', re.I)
_STYLE = re.compile(r'<style[^>]*>[\s\S]*?</style>', re.I)
_IFRAME = re.compile(r'<iframe[^>]*>[\s\S]*?</iframe>', re.I)
_OBJECT = re.compile(r'<object[^>]*>[\s\S]*?</object>', re.I)
_EMBED = re.compile(r'<embed[^>]*>', re.I)
_EXTERNAL_IMG = re.compile(r'<img[^>]*\ssrc=["\']https?://[^"\']+["\'][^>]*>', re.I)
_QUOTED_HANDLER = re.compile(r'\s+on\w+\s*=\s*["\'][^"\']*["\']', re.I)
_BARE_HANDLER = re.compile(r'\s+on\w+\s*=\s*[^\s>]*', re.I)


def sanitize_html(markup: str) -> str:
    """Strip scripts, embeds, event handlers and external images from email markup."""
    for pattern in (_SCRIPT, _STYLE, _IFRAME, _OBJECT, _EMBED, _EXTERNAL_IMG,
                    _QUOTED_HANDLER, _BARE_HANDLER):
        markup = pattern.sub('', markup)
    return markup.strip()


def check_batch_size(count: int, maximum: int = MAX_BATCH_SIZE) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise TypeError(f"Batch size must be an int, got {type(count).__name__}")
    if not MIN_BATCH_SIZE <= count <= maximum:
        raise ValueError(f"Batch size must be between {MIN_BATCH_SIZE} and {maximum}, got {count}")
    return count


def _issues_from(index: int, error: ValidationError) -> List[ValidationIssue]:
    issues = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail.get("loc", ())) or None
        issues.append(ValidationIssue(index=index, field=field, message=detail.get("msg", "invalid")))
    return issues


class CandidateValidator:
    def __init__(self, analyzer: HeuristicAnalyzer = None, max_batch_size: int = MAX_BATCH_SIZE):
        self.analyzer = analyzer or HeuristicAnalyzer()
        self.max_batch_size = max_batch_size

    def validate_and_normalize(self, batch: Sequence[Union[Mapping[str, Any], CandidateItem]]) -> ValidationOutcome:
        """
        Validate a generated batch item by item.

        Failing items are reported as issues and dropped; the rest come back
        sanitized, with features and difficulty filled in. An empty result is
        not an error here: the pipeline decides what that means.
        """
        if isinstance(batch, (str, bytes, Mapping)):
            raise TypeError("Batch must be a sequence of candidate records")
        check_batch_size(len(batch), self.max_batch_size)

        validated: List[ValidatedItem] = []
        errors: List[ValidationIssue] = []

        for index, raw in enumerate(batch):
            if isinstance(raw, CandidateItem):
                raw = raw.model_dump()
            if not isinstance(raw, Mapping):
                errors.append(ValidationIssue(index=index, message=f"expected an object, got {type(raw).__name__}"))
                continue

            try:
                candidate = CandidateItem.model_validate(raw)
                validated.append(self._normalize(candidate))
            except ValidationError as e:
                errors.extend(_issues_from(index, e))
            except ValueError as e:
                errors.append(ValidationIssue(index=index, message=str(e) or "invalid"))

        if errors:
            logger.info("Validation kept %d of %d candidates (%d issue(s))", len(validated), len(batch), len(errors))
        return ValidationOutcome(validated=validated, errors=errors)

    def _normalize(self, candidate: CandidateItem) -> ValidatedItem:
        body = sanitize_html(candidate.body_markup)
        features, difficulty = self.analyzer.backfill(
            candidate.subject,
            body,
            candidate.sender_email,
            candidate.sender_name,
            candidate.features,
            candidate.difficulty,
        )
        data = candidate.model_dump()
        data.update(body_markup=body, features=features, difficulty=difficulty)
        # Re-validated: sanitizing can leave an empty body
        return ValidatedItem.model_validate(data)


def validate_and_normalize(batch: Sequence[Union[Mapping[str, Any], CandidateItem]],
                           analyzer: HeuristicAnalyzer = None) -> ValidationOutcome:
    return CandidateValidator(analyzer).validate_and_normalize(batch)
