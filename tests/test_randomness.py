import itertools
import random
from collections import Counter

from timed_cbt.services.randomness import shuffle, shuffled


def test_shuffle_is_in_place_and_keeps_elements():
    items = list(range(20))
    result = shuffle(items, random.Random(3))

    assert result is items
    assert sorted(items) == list(range(20))


def test_shuffled_returns_copy():
    items = [1, 2, 3, 4]
    out = shuffled(items, random.Random(3))

    assert items == [1, 2, 3, 4]
    assert sorted(out) == items


def test_trivial_sequences():
    assert shuffle([]) == []
    assert shuffle([1]) == [1]


def test_every_permutation_is_roughly_equally_likely():
    rng = random.Random(1234)
    trials = 60000
    counts = Counter(tuple(shuffled("abc", rng)) for _ in range(trials))

    assert set(counts) == set(itertools.permutations("abc"))
    expected = trials / 6
    for perm, count in counts.items():
        assert abs(count - expected) < expected * 0.1, (perm, count)
