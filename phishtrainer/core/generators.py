"""
Training-content generators.

Every generator returns raw candidate records in the generator wire format
(from_name, from_email, body_html, ...). Nothing here validates them: that
is CandidateValidator's job.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional

import requests

from phishtrainer.core.exceptions import GenerationFailed, LLMResponseError
from phishtrainer.core.llm_client import LLMClient, extract_json
from phishtrainer.core.validation import MAX_BATCH_SIZE, check_batch_size

logger = logging.getLogger(__name__)


class GeneratedBatch(NamedTuple):
    items: List[Dict[str, Any]]
    source: str
    errors: List[str] = []


class ContentGenerator(ABC):
    name = "generator"

    @abstractmethod
    def generate(self, count: int, timeout: Optional[float] = None) -> GeneratedBatch:
        """Produce up to `count` candidate records (1..20)."""


# ============================================================================
# MOCK CATALOGUE
# ============================================================================

CATALOGUE: List[Dict[str, Dict[str, Any]]] = [
    {
        "category": "HR/Payroll",
        "legitimate": {
            "subject": "Your Payroll Statement is Ready",
            "from_name": "HR Department",
            "from_email": "hr@company.com",
            "body_html": '<p>Your payroll statement for this period is now available in your employee portal.</p><p><a href="https://portal.company.com/payroll">View Statement</a></p>',
            "is_phish": False,
            "explanation": "Legitimate HR email from official company domain with clear payroll information.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "URGENT: Verify Your Payroll Information",
            "from_name": "HR Department",
            "from_email": "hr@company-verify.net",
            "body_html": '<p>We need to verify your payroll information immediately. Click here to update:</p><p><a href="http://company-verify.net/update">Verify Now</a></p><p>Your account will be locked if you do not respond within 24 hours.</p>',
            "is_phish": True,
            "explanation": "Phishing email with suspicious domain, urgent language, and HTTP link.",
            "features": ["Suspicious domain", "Urgent language", "HTTP not HTTPS"],
            "difficulty": 2,
        },
    },
    {
        "category": "Delivery",
        "legitimate": {
            "subject": "Your Package Has Been Delivered",
            "from_name": "FedEx",
            "from_email": "noreply@fedex.com",
            "body_html": '<p>Your package was delivered to your address today at 2:30 PM.</p><p>Tracking: <a href="https://www.fedex.com/tracking">View Details</a></p>',
            "is_phish": False,
            "explanation": "Legitimate delivery notification from official FedEx domain.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "Package Delivery Failed - Action Required",
            "from_name": "FedEx Delivery",
            "from_email": "delivery@fedex-update.com",
            "body_html": '<p>Your package delivery failed. Please update your address:</p><p><a href="https://bit.ly/fedex-update">Update Address</a></p><p>You must respond within 2 hours or your package will be returned.</p>',
            "is_phish": True,
            "explanation": "Phishing email with suspicious domain, shortened link, and urgent deadline.",
            "features": ["Suspicious domain", "Shortened URL", "Urgent deadline"],
            "difficulty": 2,
        },
    },
    {
        "category": "Bank",
        "legitimate": {
            "subject": "Monthly Statement Available",
            "from_name": "Chase Bank",
            "from_email": "noreply@chase.com",
            "body_html": '<p>Your monthly statement is now available in Online Banking.</p><p><a href="https://www.chase.com">Sign In</a></p>',
            "is_phish": False,
            "explanation": "Legitimate bank email from official Chase domain.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "Account Suspension Notice",
            "from_name": "Chase Security",
            "from_email": "security@chase-bank-secure.com",
            "body_html": '<p>Your account has been flagged for suspicious activity. Verify your identity immediately:</p><p><a href="http://chase-bank-secure.com/verify">Verify Account</a></p><p>Please provide your SSN and account number to restore access.</p>',
            "is_phish": True,
            "explanation": "Phishing email requesting sensitive information with suspicious domain and HTTP link.",
            "features": ["Suspicious domain", "Requests SSN", "HTTP not HTTPS", "Threatening language"],
            "difficulty": 3,
        },
    },
    {
        "category": "School",
        "legitimate": {
            "subject": "Parent-Teacher Conference Reminder",
            "from_name": "Lincoln High School",
            "from_email": "noreply@lincolnhigh.edu",
            "body_html": "<p>Reminder: Your parent-teacher conference is scheduled for tomorrow at 3:00 PM.</p><p>Location: Room 205</p>",
            "is_phish": False,
            "explanation": "Legitimate school email with clear conference details.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "URGENT: Student Account Verification",
            "from_name": "Lincoln High School",
            "from_email": "admin@lincolnhigh-verify.net",
            "body_html": '<p>We need to verify your student account information. Click here immediately:</p><p><a href="https://tinyurl.com/lincoln-verify">Verify Account</a></p>',
            "is_phish": True,
            "explanation": "Phishing email with suspicious domain and shortened URL.",
            "features": ["Suspicious domain", "Shortened URL", "Urgent language"],
            "difficulty": 2,
        },
    },
    {
        "category": "Newsletter",
        "legitimate": {
            "subject": "Weekly Tech Newsletter - Issue #42",
            "from_name": "Tech Weekly",
            "from_email": "newsletter@techweekly.com",
            "body_html": '<p>This week\'s top stories:</p><ul><li>AI breakthroughs</li><li>New product launches</li></ul><p><a href="https://www.techweekly.com/unsubscribe">Unsubscribe</a></p>',
            "is_phish": False,
            "explanation": "Legitimate newsletter with clear unsubscribe option.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "You've Won $10,000!",
            "from_name": "Prize Team",
            "from_email": "winner@prize-lottery.com",
            "body_html": '<p>Congratulations! You\'ve won $10,000! Claim your prize now:</p><p><a href="http://prize-lottery.com/claim">Claim Prize</a></p><p>Send us your bank account details to receive your winnings.</p>',
            "is_phish": True,
            "explanation": "Phishing email with too-good-to-be-true offer and request for bank details.",
            "features": ["Too good to be true", "Requests bank details", "HTTP not HTTPS"],
            "difficulty": 1,
        },
    },
    {
        "category": "Calendar",
        "legitimate": {
            "subject": "Meeting Invitation: Project Review",
            "from_name": "Sarah Johnson",
            "from_email": "sarah.johnson@company.com",
            "body_html": '<p>You are invited to a meeting:</p><p><strong>Project Review</strong><br>Date: Next Monday, 10:00 AM<br>Location: Conference Room A</p><p><a href="https://calendar.company.com/accept">Accept</a></p>',
            "is_phish": False,
            "explanation": "Legitimate calendar invite from company email address.",
            "difficulty": 1,
        },
        "phishing": {
            "subject": "Calendar Invite: Click to View",
            "from_name": "Unknown Sender",
            "from_email": "calendar@mail-service.net",
            "body_html": '<p>You have a new calendar invitation. Click here to view:</p><p><a href="http://mail-service.net/invite">View Invitation</a></p>',
            "is_phish": True,
            "explanation": "Phishing email with generic sender and suspicious link.",
            "features": ["Generic sender", "Suspicious domain", "HTTP not HTTPS"],
            "difficulty": 2,
        },
    },
]


class MockContentGenerator(ContentGenerator):
    """Cycles the built-in catalogue, alternating phishing and legitimate samples."""

    name = "mock"

    def __init__(self, catalogue: List[Dict[str, Dict[str, Any]]] = None):
        self.catalogue = catalogue or CATALOGUE

    def generate(self, count: int, timeout: Optional[float] = None) -> GeneratedBatch:
        check_batch_size(count, MAX_BATCH_SIZE)
        items = []
        for i in range(count):
            # Each category yields its phishing sample, then its legitimate one
            entry = self.catalogue[(i // 2) % len(self.catalogue)]
            kind = "phishing" if i % 2 == 0 else "legitimate"
            sample = entry.get(kind) or entry.get("legitimate") or entry["phishing"]
            items.append(dict(sample))
        return GeneratedBatch(items=items, source=self.name)


# ============================================================================
# LLM GENERATOR
# ============================================================================

FEATURE_KEYS = (
    "public_domain_sender, domain_misspelling, sender_not_matching_brand, "
    "spelling_grammar_issues, urgent_language, tone_mismatch, anchor_mismatch, "
    "shortened_link, http_not_https, unexpected_attachment, asks_for_credentials, "
    "asks_for_payment, threatens_negative_consequences"
)

GENERATOR_SYSTEM_PROMPT = (
    "You are generating realistic examples of emails for a phishing-detection "
    "learning game. Produce safe, compact HTML emails. Never include tracking "
    "pixels, external scripts, or real credentials. Output strict JSON only."
)


def build_generation_prompt(count: int) -> str:
    return f"""Generate {count} realistic emails (both legitimate and phishing). For each:

- subject (string, <=120 chars)
- from_name (string)
- from_email (string, looks plausible)
- body_html (compact HTML only: <p>, <a>, <ul>, <b>, <i>)
- is_phish (boolean)
- explanation (1-2 sentences why it's phishing or why legit)
- features (optional string[] flags, choose from: {FEATURE_KEYS})
- difficulty (optional 1|2|3; base on number/severity of features)

Return as a JSON array only. No prose."""


class LLMContentGenerator(ContentGenerator):
    name = "llm"

    def __init__(self, client: LLMClient):
        self.client = client

    def generate(self, count: int, timeout: Optional[float] = None) -> GeneratedBatch:
        check_batch_size(count, MAX_BATCH_SIZE)
        try:
            reply = self.client.complete(GENERATOR_SYSTEM_PROMPT, build_generation_prompt(count), timeout=timeout)
            parsed = extract_json(reply)
        except requests.Timeout as e:
            raise GenerationFailed(f"Generator request timed out: {e}", provider=self.name) from e
        except requests.RequestException as e:
            raise GenerationFailed(f"Generator request failed: {e}", provider=self.name) from e
        except LLMResponseError as e:
            raise GenerationFailed(str(e), provider=self.name) from e

        # Some models wrap the array: {"emails": [...]}
        if isinstance(parsed, dict):
            parsed = next((v for v in parsed.values() if isinstance(v, list)), None)
        if not isinstance(parsed, list) or not parsed:
            raise GenerationFailed("Generator reply did not contain a non-empty JSON array", provider=self.name)

        logger.info("🤖 LLM generator returned %d candidate(s)", len(parsed))
        return GeneratedBatch(items=parsed, source=self.name)


class FallbackContentGenerator(ContentGenerator):
    """Uses `primary`; on GenerationFailed, answers from `fallback` and records why."""

    def __init__(self, primary: ContentGenerator, fallback: ContentGenerator):
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"

    def generate(self, count: int, timeout: Optional[float] = None) -> GeneratedBatch:
        try:
            return self.primary.generate(count, timeout=timeout)
        except GenerationFailed as e:
            logger.warning("⚠️ %s generation failed, falling back to %s: %s",
                           self.primary.name, self.fallback.name, e)
            batch = self.fallback.generate(count, timeout=timeout)
            return batch._replace(errors=[f"{self.primary.name}: {e}"] + list(batch.errors))
