import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import requests
from bs4 import BeautifulSoup

from phishtrainer.core.exceptions import LLMResponseError
from phishtrainer.core.llm_client import LLMClient, extract_json
from phishtrainer.schemas import ClassifierVerdict

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 3500

_SPACE = re.compile(r'\s+')


def html_to_text(markup: str, max_length: int = MAX_BODY_LENGTH) -> str:
    """Truncate the markup, then reduce it to whitespace-normalized text."""
    if len(markup) > max_length:
        markup = markup[:max_length] + '...'
    soup = BeautifulSoup(markup, 'lxml')
    for tag in soup.find_all(['script', 'style']):
        tag.decompose()
    return _SPACE.sub(' ', soup.get_text(separator=' ')).strip()


class PhishClassifier(ABC):
    """Optional second opinion on one email, shown next to the heuristics."""

    name = "classifier"

    @abstractmethod
    def classify(self, subject: str, body_markup: str,
                 sender_email: Optional[str] = None,
                 sender_name: Optional[str] = None) -> ClassifierVerdict:
        ...


class NoopClassifier(PhishClassifier):
    name = "noop"

    def classify(self, subject: str, body_markup: str,
                 sender_email: Optional[str] = None,
                 sender_name: Optional[str] = None) -> ClassifierVerdict:
        return ClassifierVerdict(prob_phish=0.5, reasons=[], top_tokens=[])


CLASSIFIER_SYSTEM_PROMPT = (
    "You are a cybersecurity expert analyzing emails for phishing attempts. "
    "Always respond with STRICT JSON only. No markdown, no prose."
)


def build_classification_prompt(subject: str, text_body: str,
                                sender_email: Optional[str], sender_name: Optional[str]) -> str:
    return f"""Email Details:
Subject: {subject}
From: {sender_name or 'N/A'} <{sender_email or 'N/A'}>
Body: {text_body}

Key indicators of legitimate emails:
- Official company domain (matches the brand name exactly)
- HTTPS links to official websites
- Specific details (order numbers, tracking numbers, transaction IDs)
- Professional tone without urgent threats
- No requests for passwords, SSN, or credit card details

Key indicators of phishing emails:
- Suspicious domain (slight variations of real domains)
- HTTP links (not HTTPS)
- Shortened URLs (bit.ly, tinyurl.com)
- Urgent/threatening language ("Your account will be locked", "Act now or lose access")
- Requests for sensitive information (passwords, SSN, credit card numbers)
- Generic greetings ("Dear Customer" instead of your name)
- Spelling/grammar errors

Return a JSON object with this EXACT structure:
{{
  "prob_phish": <number between 0.0 and 1.0>,
  "reasons": [<2-4 short reason strings>],
  "topTokens": [<2-4 feature-like tokens such as "urgent_language", "http_not_https", "official_domain">]
}}"""


def _probability(raw: Any) -> float:
    if isinstance(raw, bool):
        return 0.5
    if isinstance(raw, str):
        try:
            raw = float(raw)
        except ValueError:
            return 0.5
    if not isinstance(raw, (int, float)) or raw != raw:
        return 0.5
    return max(0.0, min(1.0, float(raw)))


def _strings(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [item.strip() for item in raw if isinstance(item, str) and item.strip()]


def parse_verdict(parsed: Any) -> ClassifierVerdict:
    """Coerce a model's JSON answer into a verdict; odd fields degrade to defaults."""
    if not isinstance(parsed, dict):
        raise LLMResponseError("Classifier reply is not a JSON object")
    return ClassifierVerdict(
        prob_phish=_probability(parsed.get("prob_phish")),
        reasons=_strings(parsed.get("reasons")),
        top_tokens=_strings(parsed.get("topTokens", parsed.get("top_tokens"))),
    )


class LLMClassifier(PhishClassifier):
    name = "llm"

    def __init__(self, client: LLMClient):
        self.client = client

    def classify(self, subject: str, body_markup: str,
                 sender_email: Optional[str] = None,
                 sender_name: Optional[str] = None) -> ClassifierVerdict:
        prompt = build_classification_prompt(subject, html_to_text(body_markup), sender_email, sender_name)
        try:
            reply = self.client.complete(CLASSIFIER_SYSTEM_PROMPT, prompt, temperature=0.2)
            verdict = parse_verdict(extract_json(reply))
        except (requests.RequestException, LLMResponseError) as e:
            logger.warning("⚠️ Classifier unavailable, returning no-insight verdict: %s", e)
            return ClassifierVerdict()

        if not verdict.has_insight:
            logger.warning("Classifier returned no reasons or tokens for %r", subject[:80])
        return verdict
