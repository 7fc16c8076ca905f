from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from typing import Optional, List, Dict, Any, Literal
from enum import Enum

# ==========================================
# 🎚️ DIFFICULTY TIERS
# ==========================================

Difficulty = Literal[1, 2, 3]

DIFFICULTY_LABELS: Dict[int, str] = {1: "easy", 2: "medium", 3: "hard"}
DIFFICULTY_TIERS: Dict[str, int] = {label: tier for tier, label in DIFFICULTY_LABELS.items()}


def coerce_difficulty(value: Any) -> Optional[int]:
    """Map a tier or label onto 1|2|3; anything else becomes None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip().lower()
        if value.isdigit():
            value = int(value)
        else:
            return DIFFICULTY_TIERS.get(value)
    if isinstance(value, int) and value in DIFFICULTY_LABELS:
        return value
    return None

# ==========================================
# 🚩 HEURISTIC ANALYSIS
# ==========================================

class Flag(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    detail: Optional[str] = None
    weight: int = Field(gt=0)


class AnalysisResult(BaseModel):
    flags: List[Flag] = []
    flag_keys: List[str] = []
    phish_score: int = 0
    difficulty: Difficulty = 1
    top_reasons: List[Flag] = []

# ==========================================
# ✉️ TRAINING EMAILS
# ==========================================

# Upper bounds for generator-supplied strings
MAX_LENGTHS: Dict[str, int] = {
    "subject": 200,
    "sender_name": 100,
    "sender_email": 255,
    "explanation": 1000,
    "body_markup": 50000,
}


class CandidateItem(BaseModel):
    """
    Raw generator output. Accepts both the internal field names and the
    generator wire names (from_name, from_email, body_html).
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    subject: str = Field(min_length=1, max_length=MAX_LENGTHS["subject"])
    sender_name: str = Field(
        min_length=1,
        max_length=MAX_LENGTHS["sender_name"],
        validation_alias=AliasChoices("sender_name", "from_name"),
    )
    sender_email: EmailStr = Field(validation_alias=AliasChoices("sender_email", "from_email"))
    body_markup: str = Field(
        min_length=1,
        max_length=MAX_LENGTHS["body_markup"],
        validation_alias=AliasChoices("body_markup", "body_html"),
    )
    is_phish: bool = Field(validation_alias=AliasChoices("is_phish", "ground_truth_is_phish"))
    explanation: str = Field(min_length=1, max_length=MAX_LENGTHS["explanation"])
    features: Optional[List[str]] = None
    difficulty: Optional[Difficulty] = None

    @field_validator("sender_email")
    @classmethod
    def _bounded_email(cls, value: str) -> str:
        if len(value) > MAX_LENGTHS["sender_email"]:
            raise ValueError(f"sender_email longer than {MAX_LENGTHS['sender_email']} characters")
        return value.lower()

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty_tier(cls, value: Any) -> Optional[int]:
        # Out-of-range tiers are recomputed from heuristics rather than rejected
        return coerce_difficulty(value)


class ValidatedItem(CandidateItem):
    """Candidate that passed validation, with features and difficulty guaranteed."""
    features: List[str]
    difficulty: Difficulty


class StoredItem(BaseModel):
    """A persisted training email as read back from the repository."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    subject: str
    sender_name: str
    sender_email: str
    body_markup: str
    is_phish: bool
    explanation: str
    features: Optional[List[str]] = None
    difficulty: Optional[Difficulty] = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty_tier(cls, value: Any) -> Optional[int]:
        return coerce_difficulty(value)

    @property
    def needs_backfill(self) -> bool:
        return not self.features or self.difficulty is None


class ValidationIssue(BaseModel):
    index: int
    field: Optional[str] = None
    message: str

    def __str__(self) -> str:
        where = f"{self.field}: " if self.field else ""
        return f"item {self.index}: {where}{self.message}"


class ValidationOutcome(BaseModel):
    validated: List[ValidatedItem] = []
    errors: List[ValidationIssue] = []


class DedupResult(BaseModel):
    new_items: List[ValidatedItem] = []
    skipped_count: int = 0


class GenerationReport(BaseModel):
    generated: int
    inserted: int
    skipped: int
    source: str
    inserted_ids: List[int] = []
    errors: List[str] = []

# ==========================================
# 🏅 PLAYER PROGRESS
# ==========================================

class PerDifficultyCorrect(BaseModel):
    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)


class ProfileSnapshot(BaseModel):
    points: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    per_difficulty_correct: PerDifficultyCorrect = Field(default_factory=PerDifficultyCorrect)


class RequirementType(str, Enum):
    POINTS = "points"
    STREAK = "streak"
    CORRECT_AT_LEVEL = "correctAtLevel"


class Badge(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    icon: str = ""
    requirement_type: RequirementType
    threshold: int = Field(gt=0)
    level: Optional[Literal["easy", "medium", "hard"]] = None

    @model_validator(mode="after")
    def _level_matches_requirement(self) -> "Badge":
        if self.requirement_type == RequirementType.CORRECT_AT_LEVEL and self.level is None:
            raise ValueError(f"badge {self.id!r}: correctAtLevel requires a level")
        if self.requirement_type != RequirementType.CORRECT_AT_LEVEL and self.level is not None:
            raise ValueError(f"badge {self.id!r}: level only applies to correctAtLevel")
        return self


class NextBadge(BaseModel):
    id: str
    current: int
    target: int
    percent: int


class BadgeProgress(BaseModel):
    earned_ids: List[str] = []
    next_badge: Optional[NextBadge] = None


class GuessOutcome(BaseModel):
    correct: bool
    points_delta: int
    snapshot: ProfileSnapshot
    explanation: str
    features: List[str] = []
    badges: BadgeProgress


class ProfileSummary(BaseModel):
    player_id: str
    snapshot: ProfileSnapshot
    accuracy: float
    total_guesses: int
    badges: BadgeProgress

# ==========================================
# 🤖 EXTERNAL CLASSIFIER
# ==========================================

class ClassifierVerdict(BaseModel):
    prob_phish: float = Field(default=0.5, ge=0.0, le=1.0)
    reasons: List[str] = []
    top_tokens: List[str] = []

    @computed_field
    @property
    def has_insight(self) -> bool:
        # 0.5 with no reasons or tokens is the no-op answer, not a signal
        return bool(self.reasons or self.top_tokens)
