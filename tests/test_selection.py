import random

from phishtrainer.core.selection import POOL_EXHAUSTED, PoolExhausted, SelectionPolicy, select_next, selection_weight
from phishtrainer.schemas import StoredItem


def stored(item_id, difficulty, features=("Seen before",), **overrides):
    data = {
        "id": item_id,
        "subject": f"Message {item_id}",
        "sender_name": "Acme",
        "sender_email": "news@acme-corp.com",
        "body_markup": "<p>Hello</p>",
        "is_phish": False,
        "explanation": "Routine.",
        "features": list(features) if features is not None else None,
        "difficulty": difficulty,
    }
    data.update(overrides)
    return StoredItem(**data)


def test_empty_pool_is_exhausted():
    result = select_next([])
    assert result is POOL_EXHAUSTED
    assert not result
    assert PoolExhausted() is POOL_EXHAUSTED


def test_single_item_is_always_chosen(rng):
    item = stored(1, "hard")
    assert select_next([item], rng=rng) == item


def test_weights_by_difficulty():
    assert selection_weight(stored(1, "easy")) == 3
    assert selection_weight(stored(2, "medium")) == 2
    assert selection_weight(stored(3, "hard")) == 1
    assert selection_weight(stored(4, None)) == 2


def test_easy_items_drawn_about_three_times_as_often_as_hard():
    easy, hard = stored(1, "easy"), stored(2, "hard")
    policy = SelectionPolicy(random.Random(42))
    draws = [policy.select_next([easy, hard]).id for _ in range(4000)]
    ratio = draws.count(1) / draws.count(2)
    assert 2.5 < ratio < 3.6


def test_same_seed_same_sequence():
    pool = [stored(i, d) for i, d in enumerate(["easy", "medium", "hard", "easy"], start=1)]
    policy_a, policy_b = SelectionPolicy(random.Random(5)), SelectionPolicy(random.Random(5))
    assert [policy_a.select_next(pool).id for _ in range(20)] == [policy_b.select_next(pool).id for _ in range(20)]


def test_missing_features_and_difficulty_are_backfilled_on_a_copy(rng):
    item = stored(
        1, None, features=None,
        subject="URGENT: account locked",
        body_markup="<p>Send your password now</p>",
        sender_email="alerts@gmail.com",
    )
    chosen = select_next([item], rng=rng)
    assert chosen.difficulty in (1, 2, 3)
    assert chosen.features
    assert item.features is None and item.difficulty is None


def test_selection_does_not_mutate_pool(rng):
    pool = [stored(1, "easy"), stored(2, "hard")]
    snapshot = list(pool)
    select_next(pool, rng=rng)
    assert pool == snapshot
