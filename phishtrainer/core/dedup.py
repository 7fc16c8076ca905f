"""
DeduplicationGate: drops validated candidates whose identity key
(sender_email, subject) is already persisted or repeated in the batch.
"""

import logging
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from phishtrainer.schemas import DedupResult, ValidatedItem

logger = logging.getLogger(__name__)

IdentityKey = Tuple[str, str]


def identity_key(item) -> IdentityKey:
    return (item.sender_email, item.subject)


def group_subjects_by_sender(items: Iterable[ValidatedItem]) -> Dict[str, List[str]]:
    """Distinct senders (first-seen order) mapped to their distinct subjects."""
    grouped: Dict[str, List[str]] = {}
    for item in items:
        subjects = grouped.setdefault(item.sender_email, [])
        if item.subject not in subjects:
            subjects.append(item.subject)
    return grouped


def collect_existing_keys(repository, items: Sequence[ValidatedItem]) -> Set[IdentityKey]:
    """
    Look up which identity keys of the batch are already persisted.

    One lookup per distinct sender, restricted to that sender's subjects in
    the batch. The result is never cached: each batch reads the store afresh.
    """
    subjects_by_sender = group_subjects_by_sender(items)
    if not subjects_by_sender:
        return set()
    existing = repository.find_existing_keys(list(subjects_by_sender), subjects_by_sender)
    return {(sender, subject) for sender, subject in existing}


def dedupe(validated: Sequence[ValidatedItem], existing_keys: Iterable[IdentityKey]) -> DedupResult:
    """Keep items whose key is neither persisted nor seen earlier in the batch, in order."""
    seen: Set[IdentityKey] = set(existing_keys)
    new_items = []
    for item in validated:
        key = identity_key(item)
        if key in seen:
            continue
        seen.add(key)
        new_items.append(item)

    skipped = len(validated) - len(new_items)
    if skipped:
        logger.info("Deduplication skipped %d of %d candidates", skipped, len(validated))
    return DedupResult(new_items=new_items, skipped_count=skipped)
