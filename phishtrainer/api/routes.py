import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from phishtrainer.config import settings
from phishtrainer.core.analyzer import AnalysisMemo, analyze
from phishtrainer.core.badges import DEFAULT_BADGES
from phishtrainer.core.exceptions import (
    AlreadyAnswered,
    GenerationFailed,
    GenerationTimeout,
    ItemNotFound,
    NoValidCandidates,
    PlayerNotFound,
    StorageError,
)
from phishtrainer.core.generators import ContentGenerator
from phishtrainer.core.ml_classifier import PhishClassifier
from phishtrainer.core.selection import POOL_EXHAUSTED
from phishtrainer.database import get_db
from phishtrainer.schemas import DIFFICULTY_LABELS
from phishtrainer.services.content_repository import SqlContentRepository
from phishtrainer.services.generation_service import GenerationService
from phishtrainer.services.play_service import PlayService

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# DATA MODELS
# ============================================================================

class AnalyzeRequest(BaseModel):
    subject: str
    body_markup: str = Field(validation_alias=AliasChoices("body_markup", "body_html", "body"))
    sender_email: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_email", "from_email"))
    sender_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_name", "from_name"))


class GenerateRequest(BaseModel):
    count: int = settings.DEFAULT_BATCH_SIZE


class GuessRequest(BaseModel):
    player_id: str = Field(min_length=1, max_length=64)
    email_id: int
    guess_is_phish: bool

# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_generator(request: Request) -> ContentGenerator:
    return request.app.state.generator


def get_classifier(request: Request) -> PhishClassifier:
    return request.app.state.classifier


def get_analysis_memo(request: Request) -> AnalysisMemo:
    return request.app.state.analysis_memo


def get_play_service(request: Request, db: Session = Depends(get_db)) -> PlayService:
    return PlayService(db, rng=getattr(request.app.state, "rng", None))

# ============================================================================
# ANALYSIS ENDPOINTS
# ============================================================================

@router.post("/analyze")
def analyze_email(payload: AnalyzeRequest):
    """Run the heuristic red-flag analysis on one email"""
    return analyze(payload.subject, payload.body_markup, payload.sender_email, payload.sender_name)


@router.post("/classify")
def classify_email(payload: AnalyzeRequest, classifier: PhishClassifier = Depends(get_classifier)):
    """External classifier verdict next to the heuristic analysis"""
    verdict = classifier.classify(payload.subject, payload.body_markup, payload.sender_email, payload.sender_name)
    heuristics = analyze(payload.subject, payload.body_markup, payload.sender_email, payload.sender_name)
    return {
        "provider": classifier.name,
        "classifier": verdict,
        "heuristics": heuristics,
    }

# ============================================================================
# TRAINING CONTENT ENDPOINTS
# ============================================================================

@router.post("/emails/generate")
def generate_emails(
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    generator: ContentGenerator = Depends(get_generator),
):
    count = max(1, min(payload.count, settings.MAX_BATCH_SIZE))
    service = GenerationService(generator, SqlContentRepository(db), max_batch_size=settings.MAX_BATCH_SIZE)
    try:
        return service.generate_batch(count, timeout=settings.GENERATION_TIMEOUT)
    except NoValidCandidates as e:
        raise HTTPException(status_code=422, detail={
            "message": str(e),
            "errors": [str(issue) for issue in e.issues],
        })
    except GenerationFailed as e:
        logger.error("❌ Generation failed (%s): %s", e.provider, e)
        raise HTTPException(status_code=502, detail=f"Generation failed: {e}")
    except GenerationTimeout as e:
        logger.error("❌ Generation timed out with %d candidate(s) unwritten", e.survivors)
        raise HTTPException(status_code=504, detail=str(e))
    except StorageError as e:
        logger.error("❌ Storage error during %s: %s", e.step, e)
        raise HTTPException(status_code=500, detail=f"Storage failed during {e.step}")


@router.get("/emails/next")
def next_email(player_id: str, service: PlayService = Depends(get_play_service)):
    item = service.next_item(player_id)
    if item is POOL_EXHAUSTED:
        return {"done": True}
    return {
        "done": False,
        "id": item.id,
        "subject": item.subject,
        "from_name": item.sender_name,
        "from_email": item.sender_email,
        "body_html": item.body_markup,
        "difficulty": DIFFICULTY_LABELS[item.difficulty],
    }


@router.get("/emails/stats")
def email_stats(db: Session = Depends(get_db)):
    repository = SqlContentRepository(db)
    by_difficulty = repository.counts_by_difficulty()
    by_veracity = repository.counts_by_veracity()
    return {
        "total": by_veracity["phish"] + by_veracity["legit"],
        "by_difficulty": by_difficulty,
        "phish": by_veracity["phish"],
        "legit": by_veracity["legit"],
    }


@router.get("/emails/{item_id}/analysis")
def email_analysis(item_id: int, db: Session = Depends(get_db),
                   memo: AnalysisMemo = Depends(get_analysis_memo)):
    item = SqlContentRepository(db).get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Email not found")
    return memo.get(item.id, item.subject, item.body_markup, item.sender_email, item.sender_name)

# ============================================================================
# PLAYER ENDPOINTS
# ============================================================================

@router.post("/guess")
def submit_guess(payload: GuessRequest, service: PlayService = Depends(get_play_service)):
    try:
        return service.record_guess(payload.player_id, payload.email_id, payload.guess_is_phish)
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyAnswered as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        logger.error("❌ Storage error during %s: %s", e.step, e)
        raise HTTPException(status_code=500, detail="Failed to record guess")


@router.get("/profile/{player_id}/summary")
def profile_summary(player_id: str, service: PlayService = Depends(get_play_service)):
    try:
        return service.profile_summary(player_id)
    except PlayerNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/badges")
def list_badges():
    return list(DEFAULT_BADGES)


@router.get("/health")
def health_check():
    return {"status": "healthy", "timestamp": datetime.utcnow(), "service": settings.APP_NAME}
