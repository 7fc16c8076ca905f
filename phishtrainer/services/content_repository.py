import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from phishtrainer.core.exceptions import DuplicateKeyIgnored, StorageError
from phishtrainer.models import Guess, TrainingEmail
from phishtrainer.schemas import DIFFICULTY_LABELS, StoredItem, ValidatedItem

logger = logging.getLogger(__name__)

IdentityKey = Tuple[str, str]

MAX_INSERT_ATTEMPTS = 3


class ContentRepository(ABC):
    """Persisted store of training emails."""

    @abstractmethod
    def find_existing_keys(self, senders: Sequence[str],
                           subjects_by_sender: Mapping[str, Sequence[str]]) -> Set[IdentityKey]:
        ...

    @abstractmethod
    def bulk_insert(self, items: Sequence[ValidatedItem]) -> List[int]:
        """Insert atomically; rows that collide on the identity key are skipped."""

    @abstractmethod
    def counts_by_difficulty(self) -> Dict[str, int]:
        ...

    @abstractmethod
    def counts_by_veracity(self) -> Dict[str, int]:
        ...

    @abstractmethod
    def unseen_for_player(self, player_id: str) -> List[StoredItem]:
        ...

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[StoredItem]:
        ...

    @abstractmethod
    def update_backfill(self, item_id: int, features: List[str], difficulty: int) -> None:
        ...


class SqlContentRepository(ContentRepository):
    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # DEDUP LOOKUPS
    # ========================================================================

    def find_existing_keys(self, senders: Sequence[str],
                           subjects_by_sender: Mapping[str, Sequence[str]]) -> Set[IdentityKey]:
        return self._lookup_keys(senders, subjects_by_sender)

    def _lookup_keys(self, senders: Sequence[str],
                     subjects_by_sender: Mapping[str, Sequence[str]]) -> Set[IdentityKey]:
        existing: Set[IdentityKey] = set()
        try:
            for sender in senders:
                subjects = list(subjects_by_sender.get(sender) or [])
                if not subjects:
                    continue
                rows = (
                    self.db.query(TrainingEmail.subject)
                    .filter(TrainingEmail.sender_email == sender)
                    .filter(TrainingEmail.subject.in_(subjects))
                    .all()
                )
                existing.update((sender, row.subject) for row in rows)
        except SQLAlchemyError as e:
            raise StorageError(f"Existing-key lookup failed: {e}", step="dedup") from e
        return existing

    def _persisted_keys(self, items: Sequence[ValidatedItem]) -> Set[IdentityKey]:
        subjects_by_sender: Dict[str, List[str]] = {}
        for item in items:
            subjects_by_sender.setdefault(item.sender_email, []).append(item.subject)
        return self._lookup_keys(list(subjects_by_sender), subjects_by_sender)

    # ========================================================================
    # WRITES
    # ========================================================================

    @staticmethod
    def _to_row(item: ValidatedItem) -> TrainingEmail:
        return TrainingEmail(
            subject=item.subject,
            sender_name=item.sender_name,
            sender_email=item.sender_email,
            body_markup=item.body_markup,
            is_phish=item.is_phish,
            explanation=item.explanation,
            features=list(item.features),
            difficulty=DIFFICULTY_LABELS[item.difficulty],
        )

    def _insert_all(self, items: Sequence[ValidatedItem]) -> List[int]:
        rows = [self._to_row(item) for item in items]
        try:
            self.db.add_all(rows)
            self.db.flush()
            ids = [row.id for row in rows]
            self.db.commit()
            return ids
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateKeyIgnored(str(e.orig)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Insert failed: {e}", step="insert") from e

    def bulk_insert(self, items: Sequence[ValidatedItem]) -> List[int]:
        """
        Insert all items in one transaction and return their ids.

        A uniqueness violation means another writer got there first: the
        transaction is rolled back, the rows that now exist are dropped and
        the rest is retried. Any other failure rolls back and raises
        StorageError, leaving nothing written.
        """
        first_by_key: Dict[IdentityKey, ValidatedItem] = {}
        for item in items:
            first_by_key.setdefault((item.sender_email, item.subject), item)
        pending = list(first_by_key.values())

        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            if not pending:
                return []
            try:
                ids = self._insert_all(pending)
                logger.info("💾 Inserted %d training email(s)", len(ids))
                return ids
            except DuplicateKeyIgnored as e:
                taken = self._persisted_keys(pending)
                remaining = [item for item in pending if (item.sender_email, item.subject) not in taken]
                if len(remaining) == len(pending):
                    # Violation not explained by a concurrent writer
                    raise StorageError(f"Uniqueness violation on insert: {e}", step="insert") from e
                logger.info("Skipped %d concurrently inserted duplicate(s) (attempt %d)",
                            len(pending) - len(remaining), attempt)
                pending = remaining

        raise StorageError(f"Insert did not settle after {MAX_INSERT_ATTEMPTS} attempts", step="insert")

    def update_backfill(self, item_id: int, features: List[str], difficulty: int) -> None:
        row = self.db.query(TrainingEmail).filter(TrainingEmail.id == item_id).first()
        if row is None:
            return
        try:
            row.features = list(features)
            row.difficulty = DIFFICULTY_LABELS[difficulty]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Backfill update failed: {e}", step="backfill") from e

    # ========================================================================
    # READS
    # ========================================================================

    def counts_by_difficulty(self) -> Dict[str, int]:
        counts = {label: 0 for label in DIFFICULTY_LABELS.values()}
        rows = (
            self.db.query(TrainingEmail.difficulty, func.count(TrainingEmail.id))
            .group_by(TrainingEmail.difficulty)
            .all()
        )
        for label, count in rows:
            key = label if label in counts else "unknown"
            counts[key] = counts.get(key, 0) + count
        return counts

    def counts_by_veracity(self) -> Dict[str, int]:
        phish = self.db.query(func.count(TrainingEmail.id)).filter(TrainingEmail.is_phish.is_(True)).scalar()
        legit = self.db.query(func.count(TrainingEmail.id)).filter(TrainingEmail.is_phish.is_(False)).scalar()
        return {"phish": phish or 0, "legit": legit or 0}

    def unseen_for_player(self, player_id: str) -> List[StoredItem]:
        answered = select(Guess.email_id).where(Guess.player_id == player_id)
        rows = (
            self.db.query(TrainingEmail)
            .filter(TrainingEmail.id.notin_(answered))
            .order_by(TrainingEmail.id)
            .all()
        )
        return [StoredItem.model_validate(row) for row in rows]

    def get_item(self, item_id: int) -> Optional[StoredItem]:
        row = self.db.query(TrainingEmail).filter(TrainingEmail.id == item_id).first()
        return StoredItem.model_validate(row) if row else None
