import random

import pytest

from riders import RiderPolicy, RiderRoster, load_roster
from schemas import Role

RIDERS = [{"_id": i, "name": f"Rider {i}"} for i in range(3)]


def test_empty_roster_selects_nobody():
    roster = RiderRoster([])
    for policy in RiderPolicy:
        assert roster.select(policy) is None


def test_first_available():
    assert RiderRoster(RIDERS).select(RiderPolicy.FIRST_AVAILABLE, cursor=5) is RIDERS[0]


@pytest.mark.parametrize("cursor,expected", [(0, 0), (1, 1), (2, 2), (3, 0), (7, 1)])
def test_round_robin_wraps(cursor, expected):
    assert RiderRoster(RIDERS).select(RiderPolicy.ROUND_ROBIN, cursor=cursor) is RIDERS[expected]


def test_random_uses_rng():
    roster = RiderRoster(RIDERS)
    picks = [roster.select(RiderPolicy.RANDOM, rng=random.Random(3)) for _ in range(3)]
    assert len({p["_id"] for p in picks}) == 1
    assert picks[0] in RIDERS


def test_policy_accepts_config_string():
    assert RiderRoster(RIDERS).select("round_robin", cursor=1) is RIDERS[1]


def test_roster_holds_only_riders_in_creation_order(db, make_user):
    make_user(Role.CUSTOMER)
    first = make_user(Role.RIDER)
    make_user(Role.ADMIN)
    second = make_user(Role.RIDER)

    roster = load_roster(db)

    assert [str(r["_id"]) for r in roster.riders] == [first["id"], second["id"]]
    assert all("password_hash" not in r for r in roster.riders)
