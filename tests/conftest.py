import itertools

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db, serialize_doc
from main import app
from schemas import Product, Role, User
from security import hash_password

_seq = itertools.count(1)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["ecommerce_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    # no context manager: the startup hook would ping the configured server
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role=Role.CUSTOMER, name=None, email=None, password="secret123", phone="5550100"):
        n = next(_seq)
        user = User(
            name=name or f"{Role(role).value.title()} {n}",
            email=email or f"user{n}@example.com",
            password_hash=hash_password(password, iterations=1000),
            role=role,
            phone=phone,
        )
        uid = create_document(db, "user", user)
        return serialize_doc(db["user"].find_one({"_id": ObjectId(uid)}))
    return _make


@pytest.fixture
def customer(make_user):
    return make_user(Role.CUSTOMER, name="Casey Customer")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, name="Ada Admin")


@pytest.fixture
def make_product(db):
    def _make(variants=None, title=None, **extra):
        data = {
            "title": title or f"Product {next(_seq)}",
            "description": "A test product",
            "price": 100,
            "image": "https://img.example.com/p.jpg",
            "category": "Apparel",
            "variants": variants if variants is not None else [{"color": "Red", "size": "M", "price": 100, "stock": 5}],
        }
        data.update(extra)
        return create_document(db, "product", Product(**data))
    return _make

