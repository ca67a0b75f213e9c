"""Storage engine backed by the hosted relational store.

Every read, update and delete is filtered on ``owner_id`` so a caller can
only ever reach rows it owns; a foreign id looks exactly like a missing one.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from src.core.config import Settings, get_settings
from src.core.errors import (
    AuthError,
    ConfigurationError,
    ConfirmationPendingError,
    NotFoundError,
    ProfileCreationError,
    QuotaError,
)
from src.domain.models import (
    DEFAULT_ROLE,
    DEFAULT_TIER,
    AssessmentConfig,
    AssessmentRecord,
    AuthSession,
    User,
    UserRole,
    UserTier,
)
from src.domain.ports import StoragePort, storage_operation
from src.domain.schemas import LoginRequest, SignupRequest
from src.domain.shapes import merge_update, new_stored_assessment, record_from_stored, utc_now_iso, validate_config
from src.domain.tiers import ALREADY_USED_MESSAGE, requires_entitlement, usage_from_domains, usage_from_flags, usage_key_for
from src.infrastructure.db.models import (
    AssessmentModel,
    AuthIdentityModel,
    AuthSessionModel,
    EntitlementClaimModel,
    ProfileModel,
)
from src.infrastructure.remote.auth_client import RemoteAuthClient

logger = structlog.get_logger()

PROFILE_NOT_FOUND = "Profile not found for authenticated user"

_CHECKED_TABLES = (AuthIdentityModel, AuthSessionModel, ProfileModel, AssessmentModel, EntitlementClaimModel)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands timestamps back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _iso(value: datetime) -> str:
    return _as_utc(value).isoformat()


def profile_to_user(row: ProfileModel) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        organization=row.organization or "",
        tier=UserTier(row.user_tier or DEFAULT_TIER.value),
        role=UserRole(row.role or DEFAULT_ROLE.value),
        created_at=_iso(row.created_at),
    )


def row_to_stored(row: AssessmentModel) -> dict[str, Any]:
    """Present a row in the stored-dict layout the shared shape helpers read."""
    return {
        "id": row.id,
        "name": row.name,
        "domain": row.domain,
        "status": row.status,
        "config": row.config,
        "scores": row.scores,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
        "userId": row.owner_id,
    }


class RemoteEngine(StoragePort):
    engine_name: ClassVar[str] = "remote"
    unavailable_errors: ClassVar[tuple[type[BaseException], ...]] = (SQLAlchemyError, OSError)

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._auth: RemoteAuthClient | None = None

    # ------------------------------------------------------------------ wiring
    @property
    def configured(self) -> bool:
        return self._session_factory is not None or self.settings.remote_configured

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            if not self.settings.remote_configured:
                raise ConfigurationError()
            from src.infrastructure.db.session import get_session_factory

            self._session_factory = get_session_factory(self.settings)
        return self._session_factory

    @property
    def auth(self) -> RemoteAuthClient:
        if self._auth is None:
            self._auth = RemoteAuthClient(self._factory(), self.settings)
        return self._auth

    # ------------------------------------------------------------------ profiles
    async def _load_profile(self, db: AsyncSession, user_id: str) -> ProfileModel | None:
        profile = await db.get(ProfileModel, user_id)
        if profile is not None and (not profile.role or not profile.user_tier):
            profile.role = profile.role or DEFAULT_ROLE.value
            profile.user_tier = profile.user_tier or DEFAULT_TIER.value
            await db.commit()
            await logger.ainfo("profile_repaired", user_id=user_id)
        return profile

    async def _profile_user(self, user_id: str) -> User:
        async with self._factory()() as db:
            profile = await self._load_profile(db, user_id)
            if profile is None:
                raise AuthError(PROFILE_NOT_FOUND)
            return profile_to_user(profile)

    async def _acting_user(self, session: AuthSession) -> User:
        identity = await self.auth.get_user(session.access_token)
        if identity is None:
            raise AuthError("Authentication required")
        return await self._profile_user(identity.id)

    async def _owned_row(self, db: AsyncSession, assessment_id: str, user: User) -> AssessmentModel:
        result = await db.execute(
            select(AssessmentModel).where(
                AssessmentModel.id == assessment_id, AssessmentModel.owner_id == user.id
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError()
        return row

    # ------------------------------------------------------------------ auth
    @storage_operation("login", failure_message="An error occurred during login", auth_failure=True)
    async def login(self, session: AuthSession, email: str, password: str) -> User:
        request = LoginRequest(email=email, password=password)
        await logger.ainfo("login_attempt", email=request.email)

        token, identity = await self.auth.sign_in_with_password(request.email, request.password)
        user = await self._profile_user(identity.id)

        session.establish(token, user)
        await logger.ainfo("login_success", user_id=user.id)
        return user

    @storage_operation("signup", failure_message="An error occurred during signup")
    async def signup(
        self,
        session: AuthSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        organization: str,
    ) -> User:
        request = SignupRequest(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            organization=organization,
        )
        identity = await self.auth.sign_up(
            request.email,
            request.password,
            {
                "first_name": request.first_name,
                "last_name": request.last_name,
                "organization": request.organization,
            },
        )

        profile = ProfileModel(
            id=identity.id,
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            organization=request.organization,
            user_tier=DEFAULT_TIER.value,
            role=DEFAULT_ROLE.value,
        )
        async with self._factory()() as db:
            try:
                db.add(profile)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                await logger.aerror("profile_creation_failed", user_id=identity.id, error=str(exc))
                raise ProfileCreationError() from exc

        if identity.confirmed_at is None:
            await logger.ainfo("signup_confirmation_pending", user_id=identity.id)
            raise ConfirmationPendingError()

        await logger.ainfo("signup_success", user_id=identity.id)
        return profile_to_user(profile)

    @storage_operation("logout", failure_message="An error occurred during logout")
    async def logout(self, session: AuthSession) -> None:
        await self.auth.sign_out(session.access_token)
        session.clear()

    @storage_operation(
        "get_current_user", failure_message="An error occurred while fetching current user"
    )
    async def get_current_user(self, session: AuthSession) -> User | None:
        identity = await self.auth.get_user(session.access_token)
        if identity is None:
            return None
        return await self._profile_user(identity.id)

    # ------------------------------------------------------------------ assessments
    @storage_operation(
        "create_assessment", failure_message="An error occurred while creating the assessment"
    )
    async def create_assessment(
        self, session: AuthSession, config: AssessmentConfig | Mapping[str, Any]
    ) -> AssessmentRecord:
        user = await self._acting_user(session)
        config = validate_config(config)
        stored = new_stored_assessment(
            assessment_id=str(uuid.uuid4()), config=config, user_id=user.id, now=utc_now_iso()
        )
        now = datetime.fromisoformat(stored["createdAt"])
        row = AssessmentModel(
            id=stored["id"],
            owner_id=user.id,
            domain=config.domain,
            name=config.name,
            status=stored["status"],
            config=stored["config"],
            scores=stored["scores"],
            created_at=now,
            updated_at=now,
        )

        async with self._factory()() as db:
            if requires_entitlement(user, config.domain):
                key = usage_key_for(config.domain) or config.domain
                owned = await db.scalars(select(AssessmentModel.domain).where(AssessmentModel.owner_id == user.id))
                if usage_from_domains(owned.all()).get(key):
                    raise QuotaError(ALREADY_USED_MESSAGE)
                # the claim's primary key settles concurrent creates
                db.add(EntitlementClaimModel(owner_id=user.id, usage_key=key))
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                await logger.awarning("entitlement_already_claimed", user_id=user.id, domain=config.domain)
                raise QuotaError(ALREADY_USED_MESSAGE) from exc

        await logger.ainfo("assessment_created", assessment_id=row.id, domain=config.domain)
        return record_from_stored(row_to_stored(row))

    @storage_operation(
        "list_assessments", failure_message="An error occurred while fetching assessments"
    )
    async def list_assessments(self, session: AuthSession) -> list[AssessmentRecord]:
        user = await self._acting_user(session)
        async with self._factory()() as db:
            rows = await db.scalars(
                select(AssessmentModel)
                .where(AssessmentModel.owner_id == user.id)
                .order_by(AssessmentModel.created_at.desc())
            )
            return [record_from_stored(row_to_stored(row)) for row in rows.all()]

    @storage_operation(
        "get_assessment", failure_message="An error occurred while fetching the assessment"
    )
    async def get_assessment(self, session: AuthSession, assessment_id: str) -> AssessmentRecord:
        user = await self._acting_user(session)
        async with self._factory()() as db:
            row = await self._owned_row(db, assessment_id, user)
            return record_from_stored(row_to_stored(row))

    @storage_operation(
        "update_assessment", failure_message="An error occurred while updating the assessment"
    )
    async def update_assessment(
        self, session: AuthSession, assessment_id: str, updates: Mapping[str, Any]
    ) -> AssessmentRecord:
        user = await self._acting_user(session)
        async with self._factory()() as db:
            row = await self._owned_row(db, assessment_id, user)
            merged = merge_update(row_to_stored(row), updates, now=utc_now_iso())

            row.name = merged["name"]
            row.status = merged["status"]
            row.config = merged["config"]
            row.scores = merged["scores"]
            row.updated_at = datetime.fromisoformat(merged["updatedAt"])
            await db.commit()

            await logger.ainfo("assessment_updated", assessment_id=assessment_id, fields=sorted(updates))
            return record_from_stored(row_to_stored(row))

    @storage_operation(
        "delete_assessment", failure_message="An error occurred while deleting the assessment"
    )
    async def delete_assessment(self, session: AuthSession, assessment_id: str) -> None:
        user = await self._acting_user(session)
        async with self._factory()() as db:
            result = await db.execute(
                delete(AssessmentModel).where(
                    AssessmentModel.id == assessment_id, AssessmentModel.owner_id == user.id
                )
            )
            if not result.rowcount:
                await db.rollback()
                raise NotFoundError()
            await db.commit()
        await logger.ainfo("assessment_deleted", assessment_id=assessment_id)

    @storage_operation(
        "get_used_assessments", failure_message="An error occurred while fetching used assessments"
    )
    async def get_used_assessments(self, session: AuthSession) -> dict[str, bool]:
        user = await self._acting_user(session)
        async with self._factory()() as db:
            domains = await db.scalars(select(AssessmentModel.domain).where(AssessmentModel.owner_id == user.id))
            claims = await db.scalars(
                select(EntitlementClaimModel.usage_key).where(EntitlementClaimModel.owner_id == user.id)
            )
            usage = usage_from_flags({key: True for key in claims.all()})
            for key, used in usage_from_domains(domains.all()).items():
                usage[key] = usage[key] or used
            return usage

    # ------------------------------------------------------------------ diagnostics
    async def check_connection(self) -> dict[str, Any]:
        """Report configuration, reachability and per-table access."""
        report: dict[str, Any] = {"configured": self.configured, "reachable": False, "tables": {}}
        if not self.configured:
            report["error"] = ConfigurationError.default_message
            return report

        async with self._factory()() as db:
            for model in _CHECKED_TABLES:
                table = model.__tablename__
                try:
                    count = await db.scalar(select(func.count()).select_from(model))
                except self.unavailable_errors as exc:
                    await db.rollback()
                    await logger.awarning("backend_table_unreachable", table=table, error=str(exc))
                    report["tables"][table] = {"ok": False, "error": str(exc)}
                else:
                    report["tables"][table] = {"ok": True, "rows": count}

        report["reachable"] = any(entry["ok"] for entry in report["tables"].values())
        await logger.ainfo("backend_connection_checked", reachable=report["reachable"])
        return report
