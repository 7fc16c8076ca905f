import json
import logging
import re
from typing import Any, Optional

import requests

from phishtrainer.core.exceptions import LLMResponseError

logger = logging.getLogger(__name__)

_FENCED = re.compile(r"```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```")
_ARRAY = re.compile(r"(\[[\s\S]*\])")
_OBJECT = re.compile(r"(\{[\s\S]*\})")


def extract_json(text: str) -> Any:
    """
    Pull a JSON value out of a model reply.

    Tries the reply as-is, then a fenced code block, then the outermost
    [...] span, then the outermost {...} span.
    """
    if not text or not text.strip():
        raise LLMResponseError("Empty response from model")

    try:
        return json.loads(text.strip())
    except json.JSONDecodeError:
        pass

    for pattern in (_FENCED, _ARRAY, _OBJECT):
        match = pattern.search(text)
        if not match:
            continue
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            continue

    raise LLMResponseError(f"No valid JSON found in response. Preview: {text[:200]}")


class LLMClient:
    """
    Minimal client for an OpenAI-compatible chat-completions endpoint.
    """

    def __init__(self, api_url: str, api_key: str, model: str,
                 timeout: float = 20, session: Optional[requests.Session] = None):
        if not api_url or not api_key:
            raise ValueError("LLM endpoint URL and API key are required")
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(self, system: str, prompt: str, timeout: Optional[float] = None,
                 temperature: float = 0.1) -> str:
        """Send one system+user exchange and return the reply text."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.debug("🤖 Sending request to %s (model=%s)", self.api_url, self.model)
        response = self.session.post(
            self.api_url,
            json=payload,
            headers=headers,
            timeout=timeout if timeout is not None else self.timeout,
        )
        response.raise_for_status()

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Unexpected completion payload: {e}") from e

        if not isinstance(content, str):
            raise LLMResponseError("Completion content is not text")
        return content
