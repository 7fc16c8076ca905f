"""
Error taxonomy for the training-content pipeline.

Expected business outcomes (an empty unseen pool, an all-duplicate batch)
are result values, not exceptions. What lives here is either fatal for the
operation that raised it or caught at a capability boundary.
"""

from typing import List, Optional


class PhishTrainerError(Exception):
    """Base class for all pipeline errors."""


class GenerationFailed(PhishTrainerError):
    """The external content generator could not produce a batch."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class GenerationTimeout(PhishTrainerError):
    """The caller's deadline passed before the batch was written."""

    def __init__(self, message: str, survivors: int = 0):
        super().__init__(message)
        self.survivors = survivors


class NoValidCandidates(PhishTrainerError):
    """Every candidate in a generated batch failed validation."""

    def __init__(self, issues: List = None):
        self.issues = list(issues or [])
        super().__init__(f"No valid candidates in batch ({len(self.issues)} validation issue(s))")


class StorageError(PhishTrainerError):
    """The persisted store failed; nothing from the batch was committed."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class DuplicateKeyIgnored(PhishTrainerError):
    """
    A uniqueness violation on insert. Never surfaced to callers: the
    repository catches it and counts the rows as skipped.
    """


class ItemNotFound(PhishTrainerError):
    """No training email with the requested id."""


class AlreadyAnswered(PhishTrainerError):
    """The player has already recorded an answer for this training email."""


class LLMResponseError(PhishTrainerError):
    """The language-model endpoint answered, but not with usable content."""


class PlayerNotFound(PhishTrainerError):
    """No profile exists for the requested player id."""
