"""Demo account and sample data for the local engine."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from src.core.config import Settings
from src.infrastructure.local.keys import StorageKeys
from src.infrastructure.local.store import KeyValueStore

logger = structlog.get_logger()

DEMO_EMAIL = "demo@cybersoluce.com"
DEMO_USER_ID = "12345-demo-user"


def demo_user(now: datetime | None = None) -> dict[str, Any]:
    # no role and no password hash: written the way the first release stored it
    return {
        "id": DEMO_USER_ID,
        "email": DEMO_EMAIL,
        "firstName": "Demo",
        "lastName": "User",
        "organization": "Demo Organization",
        "userTier": "professional",
        "createdAt": (now or datetime.now(UTC)).isoformat(),
    }


def _days_ago(now: datetime, days: int) -> str:
    return (now - timedelta(days=days)).isoformat()


def demo_assessments(now: datetime | None = None) -> list[dict[str, Any]]:
    """Sample assessments in the flat pre-revision layout."""
    now = now or datetime.now(UTC)
    samples = [
        ("Q3 CyberCaution Assessment", "threat-intelligence", 100, 3.5, "completed", 30, ["nist-csf", "iso27001"], ["na", "eu"]),
        ("VendorSoluce Review", "supply-chain-risk", 75, 2.8, "inProgress", 7, ["nist-csf"], ["na"]),
        ("CyberCorrect Audit", "compliance-management", 90, 4.2, "completed", 60, ["iso27001", "cis"], ["eu"]),
        ("CyberCertitude Assessment", "training-awareness", 30, 3.1, "inProgress", 3, ["cis"], ["apac"]),
    ]
    return [
        {
            "id": str(uuid.uuid4()),
            "name": name,
            "domain": domain,
            "progress": progress,
            "score": score,
            "status": status,
            "lastUpdated": _days_ago(now, age),
            "userId": DEMO_USER_ID,
            "frameworks": frameworks,
            "regions": regions,
        }
        for name, domain, progress, score, status, age, frameworks, regions in samples
    ]


DEMO_USED_FLAGS = {
    "threat-intelligence": True,
    "supply-chain-risk": True,
    "compliance-management": False,
    "training-awareness": False,
}


def ensure_demo_user(store: KeyValueStore) -> bool:
    """Install the demo account if it is missing. Returns True when written."""
    users = store.read_json(StorageKeys.USERS, [])
    if any(user.get("email") == DEMO_EMAIL for user in users):
        return False
    users.append(demo_user())
    store.write_json(StorageKeys.USERS, users)
    return True


def seed_demo_credentials(store: KeyValueStore, settings: Settings) -> bool:
    """Reset the demo account and its sample assessments.

    Refuses (returns False) outside demo environments.
    """
    if not settings.is_demo_environment():
        logger.warning("demo_seed_refused", environment=settings.environment, hostname=settings.hostname)
        return False

    users = [u for u in store.read_json(StorageKeys.USERS, []) if u.get("email") != DEMO_EMAIL]
    users.append(demo_user())
    store.write_json(StorageKeys.USERS, users)

    assessments = [a for a in store.read_json(StorageKeys.ASSESSMENTS, []) if a.get("userId") != DEMO_USER_ID]
    assessments.extend(demo_assessments())
    store.write_json(StorageKeys.ASSESSMENTS, assessments)

    flags = store.read_json(StorageKeys.USED_ASSESSMENTS, {})
    flags[DEMO_USER_ID] = dict(DEMO_USED_FLAGS)
    store.write_json(StorageKeys.USED_ASSESSMENTS, flags)

    logger.info("demo_credentials_seeded", email=DEMO_EMAIL)
    return True
