from functools import partial

import seed
from security import hash_password, verify_password


def test_seed_is_idempotent(db, monkeypatch):
    monkeypatch.setattr(seed, "hash_password", partial(hash_password, iterations=1000))

    first = seed.seed_all(db)
    second = seed.seed_all(db)

    assert first == {"products": 4, "users": 2, "riders": 2, "approved_emails": 3}
    assert second == {"products": 0, "users": 0, "riders": 0, "approved_emails": 0}
    assert db["user"].count_documents({"role": "RIDER"}) == 2
    assert db["approvedemail"].count_documents({}) == 3


def test_seeded_products_have_consistent_quantity(db):
    seed.seed_products(db)
    for product in db["product"].find():
        assert product["available_quantity"] == sum(v["stock"] for v in product["variants"])
        assert product["sizes"] and product["colors"]


def test_seeded_rider_can_log_in(db, monkeypatch):
    monkeypatch.setattr(seed, "hash_password", partial(hash_password, iterations=1000))
    seed.seed_riders(db)
    rider = db["user"].find_one({"email": "rider1@example.com"})
    assert verify_password("rider123", rider["password_hash"])
