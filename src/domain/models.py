from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserTier(str, enum.Enum):
    """Subscription tier governing which domains a user may assess."""

    FREE = "free"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class UserRole(str, enum.Enum):
    """Capability role; members are declared in ascending order of privilege."""

    VIEWER = "viewer"
    ANALYST = "analyst"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return list(UserRole).index(self)

    def at_least(self, minimum: UserRole) -> bool:
        return self.rank >= minimum.rank


DEFAULT_TIER = UserTier.FREE
DEFAULT_ROLE = UserRole.ANALYST


class AssessmentStatus(str, enum.Enum):
    """Storage-layer status vocabulary."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    # Only found on records written before the status revision
    NOT_STARTED = "notStarted"


class LegacyStatus(str, enum.Enum):
    """Status vocabulary of the flat ``Assessment`` shape."""

    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"


FREE_ENTITLEMENT_DOMAIN = "threat-intelligence"

KNOWN_DOMAINS: frozenset[str] = frozenset(
    {
        "threat-intelligence",
        "supply-chain-risk",
        "compliance-management",
        "training-awareness",
        "nist-csf",
        # historical names kept readable and writable for older callers
        "ransomware",
        "supply-chain",
        "privacy",
        "sensitive-info",
        "cui",
    }
)


def has_role_at_least(user: User | None, minimum: UserRole) -> bool:
    """Capability check used by callers; anonymous users never qualify."""
    if user is None:
        return False
    return user.role.at_least(minimum)


class AssessmentScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    systems: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()


class AssessmentConfig(BaseModel):
    """Immutable scope declaration supplied when an assessment is created."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    domain: str
    name: str = Field(..., min_length=1, max_length=200)
    frameworks: tuple[str, ...] = Field(..., min_length=1)
    regions: tuple[str, ...] = ()
    scope: AssessmentScope | None = None
    team: tuple[str, ...] | None = None

    @field_validator("domain")
    @classmethod
    def _known_domain(cls, value: str) -> str:
        domain = value.strip()
        if domain not in KNOWN_DOMAINS:
            raise ValueError(f"Unknown assessment domain: {value}")
        return domain

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("Assessment name must not be blank")
        return name

    @field_validator("frameworks")
    @classmethod
    def _unique_frameworks(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        frameworks = tuple(dict.fromkeys(item.strip() for item in value if item.strip()))
        if not frameworks:
            raise ValueError("At least one framework is required")
        return frameworks

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


@dataclass(slots=True)
class User:
    """An account as seen by the rest of the application."""

    id: str
    email: str
    first_name: str
    last_name: str
    organization: str
    tier: UserTier = DEFAULT_TIER
    role: UserRole = DEFAULT_ROLE
    created_at: str = ""

    def to_storage(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "organization": self.organization,
            "userTier": self.tier.value,
            "role": self.role.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> User:
        return cls(
            id=data["id"],
            email=data["email"],
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            organization=data.get("organization") or "",
            tier=UserTier(data.get("userTier") or DEFAULT_TIER.value),
            role=UserRole(data.get("role") or DEFAULT_ROLE.value),
            created_at=data.get("createdAt") or "",
        )


@dataclass(slots=True)
class AssessmentRecord:
    """Canonical assessment shape returned by every engine.

    ``progress``/``score``/``last_updated``/``frameworks``/``regions`` are
    legacy mirrors synthesized for callers that still read the flat fields.
    """

    id: str
    config: AssessmentConfig
    domain: str
    name: str
    status: AssessmentStatus
    scores: dict[str, Any]
    created_at: str
    updated_at: str
    user_id: str
    progress: float | None = None
    score: float | None = None
    last_updated: str | None = None
    frameworks: list[str] | None = None
    regions: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "config": self.config.to_storage(),
            "domain": self.domain,
            "name": self.name,
            "status": self.status.value,
            "scores": dict(self.scores),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "userId": self.user_id,
            "progress": self.progress,
            "score": self.score,
            "lastUpdated": self.last_updated,
            "frameworks": self.frameworks,
            "regions": self.regions,
        }


@dataclass(slots=True)
class LegacyAssessment:
    """Flat assessment shape still expected by older callers."""

    id: str
    name: str
    domain: str
    progress: float
    score: float
    status: LegacyStatus
    last_updated: str
    user_id: str
    frameworks: list[str] = field(default_factory=list)
    regions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AuthSession:
    """Credential threaded through every storage call instead of ambient state."""

    access_token: str | None = None
    user_id: str | None = None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def establish(self, token: str, user: User) -> None:
        self.access_token = token
        self.user_id = user.id
        self.email = user.email

    def clear(self) -> None:
        self.access_token = None
        self.user_id = None
        self.email = None
