import random

import pytest

from apkresign.pools import POOLS, choose, values


class FirstChoice:
    """Random source that always picks the first candidate."""

    def choices(self, population, weights=None, k=1):
        return population[:k]


def test_choose_returns_pool_member():
    rng = random.Random(42)
    for pool_id in POOLS:
        for _ in range(20):
            assert choose(pool_id, rng) in values(pool_id)


def test_choose_is_reproducible_with_a_seed():
    picks_a = [choose("cn", random.Random(5)) for _ in range(3)]
    picks_b = [choose("cn", random.Random(5)) for _ in range(3)]
    assert picks_a == picks_b


def test_choose_with_injected_source():
    assert choose("country", FirstChoice()) == "US"
    assert choose("content_profile", FirstChoice()) == "json"
    assert choose("signer_prefix", FirstChoice()) == "CERT"


def test_country_pool_is_weighted_toward_us():
    rng = random.Random(0)
    picks = [choose("country", rng) for _ in range(5000)]
    share = picks.count("US") / len(picks)
    assert 0.15 < share < 0.25


def test_unknown_pool():
    with pytest.raises(KeyError):
        choose("nope", random.Random())
