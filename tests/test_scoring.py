import pytest

from phishtrainer.core.scoring import apply_guess, points_for
from phishtrainer.schemas import ProfileSnapshot


@pytest.mark.parametrize("difficulty", [1, 2, 3])
def test_correct_answer_earns_tier(difficulty):
    assert points_for(difficulty, True, 1) == difficulty


def test_wrong_answer_earns_nothing():
    assert points_for(3, False, 0) == 0


def test_every_fifth_in_a_row_earns_bonus():
    assert points_for(2, True, 5) == 3
    assert points_for(2, True, 10) == 3
    assert points_for(2, True, 6) == 2


def test_unknown_tier_rejected():
    with pytest.raises(ValueError):
        points_for(4, True, 1)


def test_apply_correct_guess():
    snapshot, delta = apply_guess(ProfileSnapshot(points=4, streak=4), 1, True)
    assert delta == 2
    assert snapshot.points == 6
    assert snapshot.streak == 5
    assert snapshot.per_difficulty_correct.easy == 1


def test_apply_wrong_guess_resets_streak_only():
    before = ProfileSnapshot(points=9, streak=3)
    after, delta = apply_guess(before, 3, False)
    assert delta == 0
    assert after.points == 9
    assert after.streak == 0
    assert before.streak == 3
