import json
from types import SimpleNamespace

import pytest
import requests

from phishtrainer.core.exceptions import GenerationFailed, LLMResponseError
from phishtrainer.core.generators import (
    CATALOGUE,
    FallbackContentGenerator,
    LLMContentGenerator,
    MockContentGenerator,
)
from phishtrainer.core.llm_client import LLMClient, extract_json
from phishtrainer.core.ml_classifier import LLMClassifier, NoopClassifier, html_to_text, parse_verdict
from phishtrainer.core.providers import build_classifier, build_generator
from phishtrainer.core.validation import validate_and_normalize


class FakeResponse:
    def __init__(self, content=None, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {"choices": [{"message": {"content": content}}]}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def client_with(session):
    return LLMClient("https://llm.acme-corp.com/chat/completions", "secret", "test-model", timeout=5, session=session)


GENERATED = [
    {
        "subject": "Team lunch on Friday",
        "from_name": "Office Manager",
        "from_email": "office@acme-corp.com",
        "body_html": "<p>Lunch is at noon in the big room.</p>",
        "is_phish": False,
        "explanation": "Internal announcement with no links or requests.",
    }
]

# ============================================================================
# JSON EXTRACTION
# ============================================================================

def test_extract_json_direct():
    assert extract_json('[{"a": 1}]') == [{"a": 1}]


def test_extract_json_from_fenced_block():
    text = 'Here you go:\n```json\n[{"a": 1}]\n```\nEnjoy.'
    assert extract_json(text) == [{"a": 1}]


def test_extract_json_from_surrounding_prose():
    assert extract_json('Sure! [{"a": 1}, {"b": 2}] Hope that helps.') == [{"a": 1}, {"b": 2}]
    assert extract_json('Result: {"prob_phish": 0.9} done') == {"prob_phish": 0.9}


@pytest.mark.parametrize("text", ["", "   ", "no json here", "[not, valid"])
def test_extract_json_failure(text):
    with pytest.raises(LLMResponseError):
        extract_json(text)

# ============================================================================
# LLM CLIENT
# ============================================================================

def test_client_sends_bearer_auth_and_model():
    session = FakeSession(FakeResponse("hello"))
    assert client_with(session).complete("system", "prompt", timeout=3) == "hello"
    sent = session.requests[0]
    assert sent["headers"]["Authorization"] == "Bearer secret"
    assert sent["json"]["model"] == "test-model"
    assert sent["json"]["messages"][0] == {"role": "system", "content": "system"}
    assert sent["timeout"] == 3


def test_client_rejects_unexpected_payload():
    session = FakeSession(FakeResponse(payload={"unexpected": True}))
    with pytest.raises(LLMResponseError):
        client_with(session).complete("s", "p")


def test_client_requires_url_and_key():
    with pytest.raises(ValueError):
        LLMClient("", "key", "model")

# ============================================================================
# GENERATORS
# ============================================================================

def test_mock_generator_alternates_phish_and_legit():
    batch = MockContentGenerator().generate(6)
    assert batch.source == "mock"
    assert [item["is_phish"] for item in batch.items] == [True, False, True, False, True, False]
    assert batch.items[0] == CATALOGUE[0]["phishing"]
    assert batch.items[1] == CATALOGUE[0]["legitimate"]
    assert batch.items[2] == CATALOGUE[1]["phishing"]


def test_mock_catalogue_passes_validation():
    outcome = validate_and_normalize(MockContentGenerator().generate(12).items)
    assert outcome.errors == []
    assert len(outcome.validated) == 12


def test_mock_generator_emits_every_catalogue_sample():
    subjects = {item["subject"] for item in MockContentGenerator().generate(12).items}
    expected = {entry[kind]["subject"] for entry in CATALOGUE for kind in ("phishing", "legitimate")}
    assert subjects == expected
    assert "Your Payroll Statement is Ready" in subjects
    assert "Calendar Invite: Click to View" in subjects


def test_mock_items_are_copies():
    batch = MockContentGenerator().generate(1)
    batch.items[0]["subject"] = "changed"
    assert CATALOGUE[0]["phishing"]["subject"] != "changed"


def test_mock_generator_checks_count():
    with pytest.raises(ValueError):
        MockContentGenerator().generate(21)


def test_llm_generator_parses_array_reply():
    session = FakeSession(FakeResponse("```json\n" + json.dumps(GENERATED) + "\n```"))
    batch = LLMContentGenerator(client_with(session)).generate(1, timeout=7)
    assert batch.items == GENERATED
    assert batch.source == "llm"
    assert session.requests[0]["timeout"] == 7
    assert "Generate 1 realistic emails" in session.requests[0]["json"]["messages"][1]["content"]


def test_llm_generator_unwraps_object_reply():
    session = FakeSession(FakeResponse(json.dumps({"emails": GENERATED})))
    assert LLMContentGenerator(client_with(session)).generate(1).items == GENERATED


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.Timeout("read timed out")),
    FakeSession(error=requests.ConnectionError("refused")),
    FakeSession(FakeResponse(status_code=503)),
    FakeSession(FakeResponse("I cannot help with that")),
    FakeSession(FakeResponse("[]")),
])
def test_llm_generator_failures_raise_generation_failed(session):
    with pytest.raises(GenerationFailed) as exc:
        LLMContentGenerator(client_with(session)).generate(2)
    assert exc.value.provider == "llm"


def test_fallback_records_primary_failure():
    primary = LLMContentGenerator(client_with(FakeSession(error=requests.ConnectionError("refused"))))
    generator = FallbackContentGenerator(primary, MockContentGenerator())
    batch = generator.generate(2)
    assert batch.source == "mock"
    assert len(batch.items) == 2
    assert batch.errors and batch.errors[0].startswith("llm:")


def test_fallback_uses_primary_when_it_works():
    primary = LLMContentGenerator(client_with(FakeSession(FakeResponse(json.dumps(GENERATED)))))
    batch = FallbackContentGenerator(primary, MockContentGenerator()).generate(1)
    assert batch.source == "llm"
    assert batch.errors == []

# ============================================================================
# CLASSIFIERS
# ============================================================================

def test_noop_classifier_has_no_insight():
    verdict = NoopClassifier().classify("s", "<p>b</p>")
    assert verdict.prob_phish == 0.5
    assert verdict.reasons == [] and verdict.top_tokens == []
    assert verdict.has_insight is False


def test_llm_classifier_parses_verdict():
    reply = json.dumps({"prob_phish": 0.92, "reasons": ["Lookalike domain", " "], "topTokens": ["suspicious_domain"]})
    session = FakeSession(FakeResponse(reply))
    verdict = LLMClassifier(client_with(session)).classify(
        "Verify", "<p>Verify <b>now</b></p>", "a@paypal-secure.net", "PayPal",
    )
    assert verdict.prob_phish == pytest.approx(0.92)
    assert verdict.reasons == ["Lookalike domain"]
    assert verdict.top_tokens == ["suspicious_domain"]
    assert verdict.has_insight is True
    prompt = session.requests[0]["json"]["messages"][1]["content"]
    assert "Body: Verify now" in prompt
    assert "PayPal <a@paypal-secure.net>" in prompt


def test_llm_classifier_failure_returns_no_insight():
    session = FakeSession(error=requests.Timeout("slow"))
    verdict = LLMClassifier(client_with(session)).classify("s", "<p>b</p>")
    assert verdict.prob_phish == 0.5
    assert verdict.has_insight is False


@pytest.mark.parametrize("raw,expected", [("0.8", 0.8), (4, 1.0), (-2, 0.0), ("high", 0.5), (None, 0.5)])
def test_parse_verdict_probability(raw, expected):
    assert parse_verdict({"prob_phish": raw}).prob_phish == pytest.approx(expected)


def test_parse_verdict_requires_object():
    with pytest.raises(LLMResponseError):
        parse_verdict(["not", "an", "object"])


def test_html_to_text_strips_and_truncates():
    assert html_to_text("<style>p{}</style><p>Hello <b>there</b></p>") == "Hello there"
    assert len(html_to_text("a" * 5000)) == 3503

# ============================================================================
# STRATEGY SELECTION
# ============================================================================

def settings_with(**overrides):
    values = {
        "GENERATOR_PROVIDER": "mock",
        "CLASSIFIER_PROVIDER": "noop",
        "LLM_API_URL": None,
        "LLM_API_KEY": None,
        "LLM_MODEL": "test-model",
        "LLM_TIMEOUT": 5,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_build_defaults():
    assert isinstance(build_generator(settings_with()), MockContentGenerator)
    assert isinstance(build_classifier(settings_with()), NoopClassifier)


def test_build_llm_generator_wraps_with_mock_fallback():
    generator = build_generator(settings_with(
        GENERATOR_PROVIDER="llm", LLM_API_URL="https://llm.acme-corp.com", LLM_API_KEY="k",
    ))
    assert isinstance(generator, FallbackContentGenerator)
    assert isinstance(generator.fallback, MockContentGenerator)


def test_build_llm_without_credentials_degrades():
    assert isinstance(build_generator(settings_with(GENERATOR_PROVIDER="llm")), MockContentGenerator)
    assert isinstance(build_classifier(settings_with(CLASSIFIER_PROVIDER="llm")), NoopClassifier)


def test_build_llm_classifier():
    classifier = build_classifier(settings_with(
        CLASSIFIER_PROVIDER="llm", LLM_API_URL="https://llm.acme-corp.com", LLM_API_KEY="k",
    ))
    assert isinstance(classifier, LLMClassifier)


def test_unknown_provider_rejected():
    with pytest.raises(ValueError):
        build_generator(settings_with(GENERATOR_PROVIDER="bedrock"))
    with pytest.raises(ValueError):
        build_classifier(settings_with(CLASSIFIER_PROVIDER="magic"))
