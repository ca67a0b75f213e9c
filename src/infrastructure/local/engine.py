"""Storage engine backed by the synchronous local key/value store."""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, ClassVar

import structlog
from src.core.auth import TokenError, create_access_token, decode_access_token, hash_password, verify_password
from src.core.config import Settings, get_settings
from src.core.errors import AuthError, DuplicateAccountError, NotFoundError, QuotaError
from src.domain.models import (
    DEFAULT_ROLE,
    DEFAULT_TIER,
    AssessmentConfig,
    AssessmentRecord,
    AuthSession,
    User,
)
from src.domain.ports import StoragePort, storage_operation
from src.domain.schemas import LoginRequest, SignupRequest
from src.domain.shapes import (
    merge_update,
    new_stored_assessment,
    record_from_stored,
    utc_now_iso,
    validate_config,
)
from src.domain.tiers import (
    ALREADY_USED_MESSAGE,
    empty_usage,
    requires_entitlement,
    usage_from_domains,
    usage_from_flags,
    usage_key_for,
)
from src.infrastructure.local.demo import DEMO_EMAIL, DEMO_USER_ID, ensure_demo_user
from src.infrastructure.local.keys import StorageKeys
from src.infrastructure.local.store import KeyValueStore, StoreFormatError

logger = structlog.get_logger()

# Simulated round-trip per operation, in milliseconds
LATENCY_MS: dict[str, int] = {
    "login": 800,
    "signup": 1000,
    "logout": 300,
    "get_current_user": 300,
    "create_assessment": 1000,
    "list_assessments": 800,
    "get_assessment": 500,
    "update_assessment": 800,
    "delete_assessment": 700,
    "get_used_assessments": 400,
}

INVALID_CREDENTIALS = "Invalid email or password"


_OLDEST = datetime.min.replace(tzinfo=UTC)


def _sort_key(record: AssessmentRecord) -> datetime:
    # older records may carry a bare date or a timestamp without an offset
    try:
        parsed = datetime.fromisoformat(record.created_at)
    except (TypeError, ValueError):
        return _OLDEST
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class LocalEngine(StoragePort):
    """Keeps users, the current-user pointer, assessments and entitlement flags
    in four JSON collections of a :class:`KeyValueStore`.

    Reads, checks and writes inside one operation never yield to the event
    loop, so concurrent coroutines in this process cannot interleave a
    check-then-set sequence. Separate processes sharing one store file get no
    such guarantee.
    """

    engine_name: ClassVar[str] = "local"
    unavailable_errors: ClassVar[tuple[type[BaseException], ...]] = (OSError, json.JSONDecodeError, StoreFormatError)

    def __init__(self, store: KeyValueStore | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        if store is None:
            path = self.settings.local_store_path
            store = KeyValueStore(Path(path) if path else None)
        self.store = store
        self._issuer = f"{self.settings.app_name}:local"
        self._demo_checked = False

    # ------------------------------------------------------------------ helpers
    async def _delay(self, operation: str) -> None:
        seconds = LATENCY_MS[operation] / 1000 * self.settings.local_latency_scale
        await asyncio.sleep(seconds)

    def _ensure_demo_account(self) -> None:
        if self._demo_checked:
            return
        if self.settings.is_demo_environment():
            self._users()
            if ensure_demo_user(self.store):
                logger.info("demo_account_installed", email=DEMO_EMAIL)
        self._demo_checked = True

    def _records(self, key: str) -> list[dict[str, Any]]:
        value = self.store.read_json(key, [])
        if not isinstance(value, list) or not all(isinstance(v, dict) and "id" in v for v in value):
            raise StoreFormatError(f"{key} does not hold a list of records")
        return value

    def _users(self) -> list[dict[str, Any]]:
        return self._records(StorageKeys.USERS)

    def _assessments(self) -> list[dict[str, Any]]:
        return self._records(StorageKeys.ASSESSMENTS)

    def _flags(self) -> dict[str, dict[str, bool]]:
        value = self.store.read_json(StorageKeys.USED_ASSESSMENTS, {})
        if not isinstance(value, dict) or not all(isinstance(v, dict) for v in value.values()):
            raise StoreFormatError(f"{StorageKeys.USED_ASSESSMENTS} does not hold a flag map per user")
        return value

    def _pointer(self) -> dict[str, Any] | None:
        value = self.store.read_json(StorageKeys.CURRENT_USER, None)
        if value is not None and not isinstance(value, dict):
            raise StoreFormatError(f"{StorageKeys.CURRENT_USER} does not hold a user")
        return value

    def _repair_user(self, users: list[dict[str, Any]], index: int) -> dict[str, Any]:
        """Give accounts created before roles existed the default role, persisting it."""
        stored = users[index]
        if stored.get("role") and stored.get("userTier"):
            return stored
        repaired = {
            **stored,
            "role": stored.get("role") or DEFAULT_ROLE.value,
            "userTier": stored.get("userTier") or DEFAULT_TIER.value,
        }
        users[index] = repaired
        self.store.write_json(StorageKeys.USERS, users)
        logger.info("user_record_repaired", user_id=repaired.get("id"))
        return repaired

    def _find_user(self, *, user_id: str | None = None, email: str | None = None) -> dict[str, Any] | None:
        users = self._users()
        for index, stored in enumerate(users):
            if user_id is not None and stored.get("id") == user_id:
                return self._repair_user(users, index)
            if email is not None and (stored.get("email") or "").lower() == email:
                return self._repair_user(users, index)
        return None

    def _issue_token(self, user: User) -> str:
        return create_access_token(
            user.id,
            secret=self.settings.session_secret,
            issuer=self._issuer,
            roles=[user.role.value],
            email=user.email,
        )

    def _session_user(self, session: AuthSession) -> User | None:
        if not session.access_token:
            return None
        try:
            payload = decode_access_token(
                session.access_token, secret=self.settings.session_secret, issuer=self._issuer
            )
        except TokenError:
            return None
        stored = self._find_user(user_id=payload["sub"])
        return User.from_storage(stored) if stored else None

    def _acting_user(self, session: AuthSession) -> User:
        user = self._session_user(session)
        if user is None:
            raise AuthError("Authentication required")
        return user

    def _owned(self, assessments: list[dict[str, Any]], assessment_id: str, user: User) -> int:
        for index, stored in enumerate(assessments):
            if stored.get("id") == assessment_id and stored.get("userId") == user.id:
                return index
        raise NotFoundError()

    def _claim_entitlement(self, user: User, domain: str) -> None:
        key = usage_key_for(domain) or domain
        flags = self._flags()
        owned_domains = [a.get("domain") for a in self._assessments() if a.get("userId") == user.id]
        already_used = usage_from_flags(flags.get(user.id)).get(key) or usage_from_domains(owned_domains).get(key)
        if already_used:
            raise QuotaError(ALREADY_USED_MESSAGE)
        flags.setdefault(user.id, {})[key] = True
        self.store.write_json(StorageKeys.USED_ASSESSMENTS, flags)

    # ------------------------------------------------------------------ session restore
    async def restore_session(self) -> AuthSession:
        """Rebuild a session from the persisted current-user pointer."""
        session = AuthSession()
        pointer = self._pointer()
        if not pointer:
            return session
        stored = self._find_user(user_id=pointer.get("id"))
        if stored is None:
            self.store.remove_item(StorageKeys.CURRENT_USER)
            return session
        user = User.from_storage(stored)
        session.establish(self._issue_token(user), user)
        return session

    # ------------------------------------------------------------------ auth
    @storage_operation("login", failure_message="An error occurred during login", auth_failure=True)
    async def login(self, session: AuthSession, email: str, password: str) -> User:
        await self._delay("login")
        self._ensure_demo_account()
        request = LoginRequest(email=email, password=password)
        await logger.ainfo("login_attempt", email=request.email)

        stored = self._find_user(email=request.email)
        if stored is None:
            raise AuthError(INVALID_CREDENTIALS)

        demo_bypass = (
            stored.get("id") == DEMO_USER_ID
            and stored.get("email") == DEMO_EMAIL
            and self.settings.allows_demo_login()
        )
        if not demo_bypass and not verify_password(request.password, stored.get("passwordHash")):
            await logger.awarning("login_invalid_password", email=request.email)
            raise AuthError(INVALID_CREDENTIALS)

        user = User.from_storage(stored)
        session.establish(self._issue_token(user), user)
        self.store.write_json(StorageKeys.CURRENT_USER, user.to_storage())
        await logger.ainfo("login_success", user_id=user.id, demo=demo_bypass)
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
        await self._delay("signup")
        self._ensure_demo_account()
        request = SignupRequest(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            organization=organization,
        )

        users = self._users()
        # the demo address is reserved whether or not the demo account is installed
        if request.email == DEMO_EMAIL or any((u.get("email") or "").lower() == request.email for u in users):
            await logger.awarning("signup_duplicate_email", email=request.email)
            raise DuplicateAccountError()

        user = User(
            id=str(uuid.uuid4()),
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            organization=request.organization,
            tier=DEFAULT_TIER,
            role=DEFAULT_ROLE,
            created_at=utc_now_iso(),
        )
        users.append({**user.to_storage(), "passwordHash": hash_password(request.password)})
        self.store.write_json(StorageKeys.USERS, users)

        flags = self._flags()
        flags[user.id] = empty_usage()
        self.store.write_json(StorageKeys.USED_ASSESSMENTS, flags)

        await logger.ainfo("signup_success", user_id=user.id)
        return user

    @storage_operation("logout", failure_message="An error occurred during logout")
    async def logout(self, session: AuthSession) -> None:
        await self._delay("logout")
        pointer = self._pointer()
        if pointer and session.user_id and pointer.get("id") == session.user_id:
            self.store.remove_item(StorageKeys.CURRENT_USER)
        session.clear()

    @storage_operation(
        "get_current_user", failure_message="An error occurred while fetching current user"
    )
    async def get_current_user(self, session: AuthSession) -> User | None:
        await self._delay("get_current_user")
        return self._session_user(session)

    # ------------------------------------------------------------------ assessments
    @storage_operation(
        "create_assessment", failure_message="An error occurred while creating the assessment"
    )
    async def create_assessment(
        self, session: AuthSession, config: AssessmentConfig | Mapping[str, Any]
    ) -> AssessmentRecord:
        await self._delay("create_assessment")
        user = self._acting_user(session)
        config = validate_config(config)

        if requires_entitlement(user, config.domain):
            self._claim_entitlement(user, config.domain)

        stored = new_stored_assessment(
            assessment_id=str(uuid.uuid4()), config=config, user_id=user.id, now=utc_now_iso()
        )
        assessments = self._assessments()
        assessments.append(stored)
        self.store.write_json(StorageKeys.ASSESSMENTS, assessments)

        await logger.ainfo("assessment_created", assessment_id=stored["id"], domain=config.domain)
        return record_from_stored(stored)

    @storage_operation(
        "list_assessments", failure_message="An error occurred while fetching assessments"
    )
    async def list_assessments(self, session: AuthSession) -> list[AssessmentRecord]:
        await self._delay("list_assessments")
        user = self._acting_user(session)
        records = [record_from_stored(a) for a in self._assessments() if a.get("userId") == user.id]
        return sorted(records, key=_sort_key, reverse=True)

    @storage_operation(
        "get_assessment", failure_message="An error occurred while fetching the assessment"
    )
    async def get_assessment(self, session: AuthSession, assessment_id: str) -> AssessmentRecord:
        await self._delay("get_assessment")
        user = self._acting_user(session)
        assessments = self._assessments()
        return record_from_stored(assessments[self._owned(assessments, assessment_id, user)])

    @storage_operation(
        "update_assessment", failure_message="An error occurred while updating the assessment"
    )
    async def update_assessment(
        self, session: AuthSession, assessment_id: str, updates: Mapping[str, Any]
    ) -> AssessmentRecord:
        await self._delay("update_assessment")
        user = self._acting_user(session)
        assessments = self._assessments()
        index = self._owned(assessments, assessment_id, user)

        merged = merge_update(assessments[index], updates, now=utc_now_iso())
        assessments[index] = merged
        self.store.write_json(StorageKeys.ASSESSMENTS, assessments)

        await logger.ainfo("assessment_updated", assessment_id=assessment_id, fields=sorted(updates))
        return record_from_stored(merged)

    @storage_operation(
        "delete_assessment", failure_message="An error occurred while deleting the assessment"
    )
    async def delete_assessment(self, session: AuthSession, assessment_id: str) -> None:
        await self._delay("delete_assessment")
        user = self._acting_user(session)
        assessments = self._assessments()
        index = self._owned(assessments, assessment_id, user)
        del assessments[index]
        self.store.write_json(StorageKeys.ASSESSMENTS, assessments)
        await logger.ainfo("assessment_deleted", assessment_id=assessment_id)

    @storage_operation(
        "get_used_assessments", failure_message="An error occurred while fetching used assessments"
    )
    async def get_used_assessments(self, session: AuthSession) -> dict[str, bool]:
        await self._delay("get_used_assessments")
        user = self._acting_user(session)
        flags = self._flags()
        if user.id not in flags:
            flags[user.id] = empty_usage()
            self.store.write_json(StorageKeys.USED_ASSESSMENTS, flags)

        usage = usage_from_flags(flags[user.id])
        owned_domains = [a.get("domain") for a in self._assessments() if a.get("userId") == user.id]
        for key, used in usage_from_domains(owned_domains).items():
            usage[key] = usage[key] or used
        return usage
