"""Authentication system of the remote store.

Identities live in ``auth_identities``; each successful password sign-in
opens a row in ``auth_sessions`` and returns a token signed with the store's
public access key. Tokens stop resolving once their session row is gone.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from src.core.auth import TokenError, create_access_token, decode_access_token, hash_password, verify_password
from src.core.config import Settings
from src.core.errors import AuthError, ConfirmationPendingError, DuplicateAccountError
from src.infrastructure.db.models import AuthIdentityModel, AuthSessionModel

logger = structlog.get_logger()


class RemoteAuthClient:
    """Sign-up, sign-in and token resolution against the remote store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.issuer = f"{settings.app_name}:remote"

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthIdentityModel:
        """Create an identity.

        The identity is confirmed immediately unless the store requires email
        confirmation, in which case ``confirmed_at`` stays empty.
        """
        identity = AuthIdentityModel(
            email=email.lower(),
            hashed_password=hash_password(password),
            user_metadata=dict(metadata or {}),
            confirmed_at=None if self.settings.remote_require_email_confirmation else datetime.now(UTC),
        )
        async with self.session_factory() as session:
            try:
                session.add(identity)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                await logger.awarning("identity_duplicate_email", email=email)
                raise DuplicateAccountError() from exc
        await logger.ainfo("identity_created", identity_id=identity.id, confirmed=identity.confirmed_at is not None)
        return identity

    async def sign_in_with_password(self, email: str, password: str) -> tuple[str, AuthIdentityModel]:
        """Return a session token and the identity it belongs to."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(AuthIdentityModel).where(AuthIdentityModel.email == email.lower())
            )
            identity = result.scalar_one_or_none()

            if identity is None or not verify_password(password, identity.hashed_password):
                await logger.awarning("identity_sign_in_rejected", email=email)
                raise AuthError("Invalid email or password")
            if identity.confirmed_at is None:
                raise ConfirmationPendingError()

            auth_session = AuthSessionModel(identity_id=identity.id)
            session.add(auth_session)
            await session.execute(
                update(AuthIdentityModel)
                .where(AuthIdentityModel.id == identity.id)
                .values(last_sign_in_at=datetime.now(UTC))
            )
            await session.commit()

        token = create_access_token(
            identity.id,
            secret=self.settings.remote_key,
            issuer=self.issuer,
            email=identity.email,
            session_id=auth_session.id,
        )
        return token, identity

    def _claims(self, token: str | None) -> dict | None:
        if not token:
            return None
        try:
            claims = decode_access_token(token, secret=self.settings.remote_key, issuer=self.issuer)
        except TokenError:
            return None
        return claims if claims.get("sid") else None

    async def get_user(self, token: str | None) -> AuthIdentityModel | None:
        """Resolve a token to its identity; ``None`` for invalid or signed-out tokens."""
        claims = self._claims(token)
        if claims is None:
            return None
        async with self.session_factory() as session:
            result = await session.execute(
                select(AuthIdentityModel)
                .join(AuthSessionModel, AuthSessionModel.identity_id == AuthIdentityModel.id)
                .where(AuthSessionModel.id == claims["sid"], AuthIdentityModel.id == claims["sub"])
            )
            return result.scalar_one_or_none()

    async def sign_out(self, token: str | None) -> None:
        claims = self._claims(token)
        if claims is None:
            return
        async with self.session_factory() as session:
            await session.execute(delete(AuthSessionModel).where(AuthSessionModel.id == claims["sid"]))
            await session.commit()
        await logger.ainfo("identity_signed_out", identity_id=claims["sub"])

    async def confirm_identity(self, email: str) -> bool:
        """Mark an identity as confirmed. Returns False when no unconfirmed identity matches."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(AuthIdentityModel)
                .where(AuthIdentityModel.email == email.lower(), AuthIdentityModel.confirmed_at.is_(None))
                .values(confirmed_at=datetime.now(UTC))
            )
            await session.commit()
        confirmed = bool(result.rowcount)
        if confirmed:
            await logger.ainfo("identity_confirmed", email=email)
        return confirmed
