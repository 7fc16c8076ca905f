"""
Strategy selection for the pluggable capabilities, done once at startup.
"""

import logging

from phishtrainer.core.generators import (
    ContentGenerator,
    FallbackContentGenerator,
    LLMContentGenerator,
    MockContentGenerator,
)
from phishtrainer.core.llm_client import LLMClient
from phishtrainer.core.ml_classifier import LLMClassifier, NoopClassifier, PhishClassifier

logger = logging.getLogger(__name__)


def _llm_configured(settings) -> bool:
    return bool(settings.LLM_API_URL and settings.LLM_API_KEY)


def _llm_client(settings) -> LLMClient:
    return LLMClient(
        api_url=settings.LLM_API_URL,
        api_key=settings.LLM_API_KEY,
        model=settings.LLM_MODEL,
        timeout=settings.LLM_TIMEOUT,
    )


def build_generator(settings) -> ContentGenerator:
    provider = settings.GENERATOR_PROVIDER.lower()
    if provider not in ("mock", "llm"):
        raise ValueError(f"Unknown GENERATOR_PROVIDER: {settings.GENERATOR_PROVIDER!r}")

    if provider == "llm":
        if _llm_configured(settings):
            logger.info("✓ Content generator: LLM (%s) with mock fallback", settings.LLM_MODEL)
            return FallbackContentGenerator(LLMContentGenerator(_llm_client(settings)), MockContentGenerator())
        logger.warning("⚠️ GENERATOR_PROVIDER=llm but LLM_API_URL/LLM_API_KEY are not set, using mock")

    logger.info("✓ Content generator: mock catalogue")
    return MockContentGenerator()


def build_classifier(settings) -> PhishClassifier:
    provider = settings.CLASSIFIER_PROVIDER.lower()
    if provider not in ("noop", "llm"):
        raise ValueError(f"Unknown CLASSIFIER_PROVIDER: {settings.CLASSIFIER_PROVIDER!r}")

    if provider == "llm":
        if _llm_configured(settings):
            logger.info("✓ Classifier: LLM (%s)", settings.LLM_MODEL)
            return LLMClassifier(_llm_client(settings))
        logger.warning("⚠️ CLASSIFIER_PROVIDER=llm but LLM_API_URL/LLM_API_KEY are not set, using noop")

    return NoopClassifier()
