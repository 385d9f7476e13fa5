"""
Seed demo data.

    python seed.py                 # products, staff, a customer, approved emails
    python seed.py --riders-only   # just the two demo riders

Existing users (by email) and products (by title) are left alone.
"""
import argparse
import sys

import structlog
from pymongo.database import Database

import database
import settings
from database import create_document
from logging_config import configure_logging
from schemas import ApprovedEmail, Product, Role, User
from security import hash_password

logger = structlog.get_logger(__name__)

DEMO_PRODUCTS = [
    {
        "title": "Arctic Chill 1.5 Ton Split AC",
        "description": "Energy efficient split AC with low noise operation and rapid cooling.",
        "price": 32999,
        "image": "https://i.imgur.com/8yUf7UL.jpg",
        "category": "Air Conditioner",
        "variants": [
            {"color": "White", "size": "1 Ton", "price": 29999, "stock": 15},
            {"color": "White", "size": "1.5 Ton", "price": 32999, "stock": 20},
            {"color": "Silver", "size": "1 Ton", "price": 30999, "stock": 8},
            {"color": "Silver", "size": "1.5 Ton", "price": 33999, "stock": 12},
        ],
        "rating": 4.5,
    },
    {
        "title": "BreezeMaster Ceiling Fan",
        "description": "High-speed ceiling fan with five speed settings and a silent motor.",
        "price": 2499,
        "image": "https://i.imgur.com/NKDdASM.jpg",
        "category": "Ceiling Fan",
        "variants": [
            {"color": "Brown", "size": "48 inch", "price": 2499, "stock": 25},
            {"color": "Brown", "size": "56 inch", "price": 2999, "stock": 15},
            {"color": "White", "size": "48 inch", "price": 2499, "stock": 20},
            {"color": "Black", "size": "56 inch", "price": 3199, "stock": 8},
        ],
        "rating": 4.2,
    },
    {
        "title": "WindForce Tower Fan",
        "description": "Slim oscillating tower fan with remote control and timer.",
        "price": 3999,
        "image": "https://i.imgur.com/vL9UhWe.jpg",
        "category": "Tower Fan",
        "variants": [
            {"color": "Black", "size": "36 inch", "price": 3999, "stock": 30},
            {"color": "Black", "size": "42 inch", "price": 4599, "stock": 20},
            {"color": "White", "size": "36 inch", "price": 3999, "stock": 25},
        ],
        "rating": 4.0,
    },
    {
        "title": "DeskCool Table Fan",
        "description": "Compact table fan with adjustable tilt and wide oscillation.",
        "price": 1499,
        "image": "https://i.imgur.com/RAU7Z6f.jpg",
        "category": "Table Fan",
        "variants": [
            {"color": "Blue", "size": "12 inch", "price": 1499, "stock": 40},
            {"color": "Blue", "size": "16 inch", "price": 1899, "stock": 30},
            {"color": "White", "size": "12 inch", "price": 1499, "stock": 35},
        ],
        "rating": 4.3,
    },
]

DEMO_RIDERS = [
    {"name": "Rider One", "email": "rider1@example.com", "password": "rider123", "phone": "9876543210"},
    {"name": "Rider Two", "email": "rider2@example.com", "password": "rider123", "phone": "9876543211"},
]

DEMO_USERS = [
    {"name": "John Doe", "email": "john@example.com", "password": "password123", "phone": "9876543200",
     "role": Role.CUSTOMER},
    {"name": "Admin User", "email": "admin@example.com", "password": "admin123", "phone": "9876543201",
     "role": Role.ADMIN},
]

APPROVED_EMAILS = [
    {"email": "admin@example.com", "role": "ADMIN"},
    {"email": "rider1@example.com", "role": "RIDER"},
    {"email": "rider2@example.com", "role": "RIDER"},
]


def seed_users(db: Database, users: list) -> int:
    created = 0
    for u in users:
        if db["user"].find_one({"email": u["email"]}):
            continue
        user = User(
            name=u["name"],
            email=u["email"],
            password_hash=hash_password(u["password"]),
            phone=u.get("phone"),
            role=u.get("role", Role.CUSTOMER),
        )
        create_document(db, "user", user)
        created += 1
    return created


def seed_riders(db: Database) -> int:
    return seed_users(db, [{**r, "role": Role.RIDER} for r in DEMO_RIDERS])


def seed_products(db: Database) -> int:
    created = 0
    for p in DEMO_PRODUCTS:
        if db["product"].find_one({"title": p["title"]}):
            continue
        create_document(db, "product", Product(**p))
        created += 1
    return created


def seed_approved_emails(db: Database) -> int:
    created = 0
    for entry in APPROVED_EMAILS:
        approved = ApprovedEmail(**entry)
        res = db["approvedemail"].update_one(
            {"email": approved.email},
            {"$setOnInsert": approved.model_dump()},
            upsert=True,
        )
        created += 1 if res.upserted_id else 0
    return created


def seed_all(db: Database) -> dict:
    return {
        "products": seed_products(db),
        "users": seed_users(db, DEMO_USERS),
        "riders": seed_riders(db),
        "approved_emails": seed_approved_emails(db),
    }


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed demo data into MongoDB")
    parser.add_argument("--riders-only", action="store_true", help="only create the demo riders")
    args = parser.parse_args(argv)

    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    if database.db is None:
        logger.error("database_not_configured", hint="set DATABASE_URL and DATABASE_NAME")
        return 1
    database.ensure_indexes(database.db)

    if args.riders_only:
        logger.info("seeded", riders=seed_riders(database.db))
    else:
        logger.info("seeded", **seed_all(database.db))
    return 0


if __name__ == "__main__":
    sys.exit(main())
