import logging
import random
from typing import Sequence, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from phishtrainer.core.analyzer import HeuristicAnalyzer
from phishtrainer.core.badges import DEFAULT_BADGES, BadgeEngine
from phishtrainer.core.exceptions import AlreadyAnswered, ItemNotFound, PlayerNotFound, StorageError
from phishtrainer.core.scoring import apply_guess
from phishtrainer.core.selection import POOL_EXHAUSTED, PoolExhausted, SelectionPolicy
from phishtrainer.models import Guess, PlayerProfile
from phishtrainer.schemas import (
    Badge,
    GuessOutcome,
    PerDifficultyCorrect,
    ProfileSnapshot,
    ProfileSummary,
    StoredItem,
)
from phishtrainer.services.content_repository import ContentRepository, SqlContentRepository

logger = logging.getLogger(__name__)

GUESS_ATTEMPTS = 2


def snapshot_of(profile: PlayerProfile) -> ProfileSnapshot:
    return ProfileSnapshot(
        points=profile.points or 0,
        streak=profile.streak or 0,
        per_difficulty_correct=PerDifficultyCorrect(
            easy=profile.easy_correct or 0,
            medium=profile.medium_correct or 0,
            hard=profile.hard_correct or 0,
        ),
    )


class PlayService:
    """The player-facing loop: pick an email, score the answer, track progress."""

    def __init__(self, db: Session, repository: ContentRepository = None,
                 rng: random.Random = None, analyzer: HeuristicAnalyzer = None,
                 badges: Sequence[Badge] = DEFAULT_BADGES):
        self.db = db
        self.repository = repository or SqlContentRepository(db)
        self.policy = SelectionPolicy(rng, analyzer)
        self.badge_engine = BadgeEngine(badges)

    def next_item(self, player_id: str, persist_backfill: bool = False) -> Union[StoredItem, PoolExhausted]:
        pool = self.repository.unseen_for_player(player_id)
        chosen = self.policy.draw(pool)
        if chosen is None:
            logger.info("Player %s has answered every training email", player_id,
                        extra={"player_id": player_id})
            return POOL_EXHAUSTED

        item = self.policy.backfill(chosen)
        if persist_backfill and chosen.needs_backfill:
            self.repository.update_backfill(item.id, item.features, item.difficulty)
        return item

    def record_guess(self, player_id: str, item_id: int, guess_is_phish: bool) -> GuessOutcome:
        stored = self.repository.get_item(item_id)
        if stored is None:
            raise ItemNotFound(f"Training email {item_id} not found")
        if self._has_answered(player_id, item_id):
            raise AlreadyAnswered(f"Player {player_id} already answered email {item_id}")

        item = self.policy.backfill(stored)
        correct = bool(guess_is_phish) == item.is_phish

        for attempt in range(1, GUESS_ATTEMPTS + 1):
            snapshot, delta, progress = self._stage_guess(player_id, item, bool(guess_is_phish), correct)
            try:
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                # Either this guess already exists, or another request created the profile first
                if self._has_answered(player_id, item_id):
                    raise AlreadyAnswered(f"Player {player_id} already answered email {item_id}") from e
                if attempt == GUESS_ATTEMPTS:
                    raise StorageError(f"Failed to record guess: {e}", step="guess") from e
                logger.warning("Profile for player %s was created concurrently, retrying guess", player_id,
                               extra={"player_id": player_id, "email_id": item_id})
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"Failed to record guess: {e}", step="guess") from e

        logger.info("Player %s answered email %s: %s (%+d points)",
                    player_id, item_id, "correct" if correct else "wrong", delta,
                    extra={"player_id": player_id, "email_id": item_id})
        return GuessOutcome(
            correct=correct,
            points_delta=delta,
            snapshot=snapshot,
            explanation=item.explanation,
            features=item.features or [],
            badges=progress,
        )

    def _has_answered(self, player_id: str, item_id: int) -> bool:
        answered = (
            self.db.query(Guess.id)
            .filter(Guess.player_id == player_id, Guess.email_id == item_id)
            .first()
        )
        return answered is not None

    def _stage_guess(self, player_id: str, item: StoredItem, guess_is_phish: bool, correct: bool):
        """Apply the guess to the player's profile and add the guess row, without committing."""
        profile = self.db.get(PlayerProfile, player_id)
        if profile is None:
            profile = PlayerProfile(id=player_id, points=0, streak=0,
                                    easy_correct=0, medium_correct=0, hard_correct=0, badges=[])
            self.db.add(profile)

        snapshot, delta = apply_guess(snapshot_of(profile), item.difficulty, correct)
        progress = self.badge_engine.evaluate(snapshot, profile.badges or [])

        profile.points = snapshot.points
        profile.streak = snapshot.streak
        profile.easy_correct = snapshot.per_difficulty_correct.easy
        profile.medium_correct = snapshot.per_difficulty_correct.medium
        profile.hard_correct = snapshot.per_difficulty_correct.hard
        # New list so the JSON column registers the change
        profile.badges = list(progress.earned_ids)

        self.db.add(Guess(
            player_id=player_id,
            email_id=item.id,
            user_guess=guess_is_phish,
            is_correct=correct,
            points=delta,
        ))
        return snapshot, delta, progress

    def profile_summary(self, player_id: str) -> ProfileSummary:
        profile = self.db.get(PlayerProfile, player_id)
        if profile is None:
            raise PlayerNotFound(f"Player {player_id} not found")

        total = self.db.query(func.count(Guess.id)).filter(Guess.player_id == player_id).scalar() or 0
        correct = (
            self.db.query(func.count(Guess.id))
            .filter(Guess.player_id == player_id, Guess.is_correct.is_(True))
            .scalar()
        ) or 0
        accuracy = round(100 * correct / total, 2) if total else 0.0

        snapshot = snapshot_of(profile)
        return ProfileSummary(
            player_id=player_id,
            snapshot=snapshot,
            accuracy=accuracy,
            total_guesses=total,
            badges=self.badge_engine.evaluate(snapshot, profile.badges or []),
        )
