import hashlib

import pytest

from core.exceptions import DrawVerificationFailed, InvalidRandomWords, RaffleInvariantViolation
from services.draw_service import (
    UINT256_MAX,
    derive_random_words,
    pick_winner_index,
    verify_draw,
)


@pytest.mark.parametrize("random_word,count,expected", [
    (7, 1, 0),
    (0, 3, 0),
    (1, 3, 1),
    (5, 3, 2),
    (123, 10, 3),
    (UINT256_MAX, 7, UINT256_MAX % 7),
])
def test_pick_winner_index_is_word_mod_count(random_word, count, expected):
    assert pick_winner_index(random_word, count) == expected


def test_pick_winner_index_rejects_zero_entrants():
    with pytest.raises(RaffleInvariantViolation):
        pick_winner_index(42, 0)


@pytest.mark.parametrize("random_word", [-1, UINT256_MAX + 1])
def test_pick_winner_index_rejects_non_uint256(random_word):
    with pytest.raises(InvalidRandomWords):
        pick_winner_index(random_word, 3)


def test_derive_random_words_is_sha256_of_request_and_index():
    words = derive_random_words(12, 2)
    assert len(words) == 2
    assert words[0] == int(hashlib.sha256(b"12:0").hexdigest(), 16)
    assert words[1] == int(hashlib.sha256(b"12:1").hexdigest(), 16)
    assert derive_random_words(12, 2) == words
    assert derive_random_words(13, 1)[0] != words[0]


def test_verify_draw_accepts_consistent_record():
    result = verify_draw(7, ["alice", "bob", "carol"], 1, "bob")
    assert result["ok"] is True
    assert result["winner"] == "bob"
    assert result["random_word"] == "7"


def test_verify_draw_rejects_wrong_index():
    with pytest.raises(DrawVerificationFailed):
        verify_draw(7, ["alice", "bob", "carol"], 2, "carol")


def test_verify_draw_rejects_wrong_winner():
    with pytest.raises(DrawVerificationFailed):
        verify_draw(7, ["alice", "bob", "carol"], 1, "mallory")
