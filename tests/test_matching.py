import sys
import pathlib
import numpy as np

# Ensure package root is on the path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from tpxcoin.matching import (
    count_distinct_sorted,
    first_of_each_shot,
    is_shot_present,
    matching_range,
    matching_ranges,
)

SHOTS = np.array([1, 1, 2, 3, 3, 3, 4, 5, 5, 6])


def test_is_shot_present_scalar():
    assert is_shot_present(SHOTS, 3) is True
    assert is_shot_present(SHOTS, 0) is False
    assert is_shot_present(SHOTS, 7) is False
    assert is_shot_present(np.array([2, 5, 6]), 4) is False


def test_is_shot_present_vectorized():
    mask = is_shot_present(np.array([2, 5, 6]), SHOTS)
    expected = np.isin(SHOTS, [2, 5, 6])
    assert np.array_equal(mask, expected)


def test_is_shot_present_empty_table():
    assert is_shot_present(np.array([], dtype=int), 3) is False
    assert not is_shot_present(np.array([], dtype=int), SHOTS).any()


def test_matching_range():
    assert matching_range(SHOTS, 3) == (3, 6)
    assert matching_range(SHOTS, 1) == (0, 2)
    assert matching_range(SHOTS, 6) == (9, 10)
    lo, hi = matching_range(SHOTS, 7)
    assert lo == hi == 10
    lo, hi = matching_range(SHOTS, 0)
    assert lo == hi == 0


def test_matching_ranges_matches_scalar():
    query = np.array([0, 2, 5, 6, 9])
    lo, hi = matching_ranges(SHOTS, query)
    for q, l, h in zip(query, lo, hi):
        assert (l, h) == matching_range(SHOTS, q)


def test_distinct_count_uses_order():
    assert count_distinct_sorted(SHOTS) == 6
    assert count_distinct_sorted(np.array([], dtype=int)) == 0
    assert count_distinct_sorted(np.array([4])) == 1
    assert np.array_equal(
        first_of_each_shot(np.array([0, 0, 3, 3, 7])),
        [True, False, True, False, True],
    )
