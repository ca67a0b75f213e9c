from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _utcnow() -> datetime:
    # set client-side; sqlite's CURRENT_TIMESTAMP only has second resolution
    return datetime.now(UTC)


class AuthIdentityModel(Base):
    """Identity owned by the remote store's authentication system."""

    __tablename__ = "auth_identities"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    user_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    last_sign_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sessions: Mapped[list[AuthSessionModel]] = relationship(
        back_populates="identity", cascade="all,delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<AuthIdentityModel(id={self.id}, email={self.email})>"


class AuthSessionModel(Base):
    """Server-side record of an issued session token; deleted on sign-out."""

    __tablename__ = "auth_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    identity_id: Mapped[str] = mapped_column(
        ForeignKey("auth_identities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    identity: Mapped[AuthIdentityModel] = relationship(back_populates="sessions")


class ProfileModel(Base):
    """Application profile; shares its id with the identity it describes."""

    __tablename__ = "cs_profiles"

    id: Mapped[str] = mapped_column(
        ForeignKey("auth_identities.id", ondelete="CASCADE"), primary_key=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    organization: Mapped[str | None] = mapped_column(String(200), nullable=True)
    user_tier: Mapped[str] = mapped_column(String(32), default="free", nullable=False)
    # nullable: rows written before roles existed are repaired on read
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProfileModel(id={self.id}, email={self.email}, tier={self.user_tier})>"


class AssessmentModel(Base):
    __tablename__ = "cs_assessments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str] = mapped_column(
        ForeignKey("cs_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # free-form: rows may still carry the pre-revision vocabulary
    status: Mapped[str] = mapped_column(String(32), default="in_progress", nullable=False)
    config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    scores: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class EntitlementClaimModel(Base):
    """One row per consumed usage key; the primary key makes a claim single-use."""

    __tablename__ = "cs_entitlement_claims"

    owner_id: Mapped[str] = mapped_column(
        ForeignKey("cs_profiles.id", ondelete="CASCADE"), primary_key=True
    )
    usage_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


__all__ = [
    "AuthIdentityModel",
    "AuthSessionModel",
    "ProfileModel",
    "AssessmentModel",
    "EntitlementClaimModel",
]
