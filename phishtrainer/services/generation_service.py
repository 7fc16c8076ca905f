import logging
import time
from typing import Optional

from phishtrainer.core.analyzer import HeuristicAnalyzer
from phishtrainer.core.dedup import collect_existing_keys, dedupe
from phishtrainer.core.exceptions import GenerationFailed, GenerationTimeout, NoValidCandidates
from phishtrainer.core.generators import ContentGenerator
from phishtrainer.core.validation import CandidateValidator, check_batch_size
from phishtrainer.schemas import GenerationReport
from phishtrainer.services.content_repository import ContentRepository

logger = logging.getLogger(__name__)


class GenerationService:
    def __init__(self, generator: ContentGenerator, repository: ContentRepository,
                 analyzer: HeuristicAnalyzer = None, max_batch_size: int = 20):
        self.generator = generator
        self.repository = repository
        self.max_batch_size = max_batch_size
        self.validator = CandidateValidator(analyzer, max_batch_size)

    def generate_batch(self, count: int, timeout: Optional[float] = None) -> GenerationReport:
        """Generate, validate, dedupe and persist one batch of training emails"""
        check_batch_size(count, self.max_batch_size)
        start_time = time.monotonic()
        deadline = start_time + timeout if timeout is not None else None

        # 1. Generate
        logger.info("[1/4] Generating %d candidate(s) with %s...", count, self.generator.name)
        batch = self.generator.generate(count, timeout=self._remaining(deadline))
        if not batch.items:
            raise GenerationFailed("Generator returned an empty batch", provider=batch.source)
        items = list(batch.items)[:count]

        # 2. Validate
        logger.info("[2/4] Validating %d candidate(s)...", len(items))
        outcome = self.validator.validate_and_normalize(items)
        if not outcome.validated:
            raise NoValidCandidates(outcome.errors)

        # 3. Dedup against the store
        logger.info("[3/4] Checking %d candidate(s) for duplicates...", len(outcome.validated))
        existing = collect_existing_keys(self.repository, outcome.validated)
        result = dedupe(outcome.validated, existing)

        if deadline is not None and time.monotonic() >= deadline:
            raise GenerationTimeout(
                f"Generation deadline of {timeout}s passed before the write",
                survivors=len(result.new_items),
            )

        # 4. Persist
        logger.info("[4/4] Inserting %d new training email(s)...", len(result.new_items))
        inserted_ids = self.repository.bulk_insert(result.new_items) if result.new_items else []

        report = GenerationReport(
            generated=len(items),
            inserted=len(inserted_ids),
            skipped=len(outcome.validated) - len(inserted_ids),
            source=batch.source,
            inserted_ids=inserted_ids,
            errors=list(batch.errors) + [str(issue) for issue in outcome.errors],
        )
        logger.info("✓ Batch complete in %.2fs: %d inserted, %d skipped",
                    time.monotonic() - start_time, report.inserted, report.skipped,
                    extra={"provider": batch.source})
        return report

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.001, deadline - time.monotonic())
