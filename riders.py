"""
Rider selection.

All three ways riders get picked (first available at checkout, round-robin
for batch assignment, random for the one-off endpoint) go through
``RiderRoster.select`` so each call site names its policy.
"""
import random
from enum import Enum
from typing import List, Optional

from pymongo.database import Database

from schemas import Role


class RiderPolicy(str, Enum):
    FIRST_AVAILABLE = "first_available"
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"


class RiderRoster:
    def __init__(self, riders: List[dict]):
        self.riders = list(riders)

    def __len__(self):
        return len(self.riders)

    def select(self, policy: RiderPolicy, cursor: int = 0, rng: Optional[random.Random] = None) -> Optional[dict]:
        if not self.riders:
            return None
        policy = RiderPolicy(policy)
        if policy == RiderPolicy.FIRST_AVAILABLE:
            return self.riders[0]
        if policy == RiderPolicy.ROUND_ROBIN:
            return self.riders[cursor % len(self.riders)]
        return (rng or random).choice(self.riders)


def load_roster(db: Database) -> RiderRoster:
    # _id order is insertion order
    riders = db["user"].find({"role": Role.RIDER.value}, {"password_hash": 0}).sort("_id", 1)
    return RiderRoster(list(riders))


def rider_ref(rider: dict) -> dict:
    return {"rider_id": str(rider["_id"]), "rider_name": rider["name"]}
