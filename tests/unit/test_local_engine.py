"""Tests for the engine backed by the local key/value store."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from src.domain.models import AssessmentStatus, AuthSession, UserRole, UserTier
from src.infrastructure.local import KeyValueStore, LocalEngine, StorageKeys
from src.infrastructure.local import engine as local_engine_module
from src.infrastructure.local.demo import DEMO_EMAIL, DEMO_USER_ID, seed_demo_credentials

from tests.utils import TEST_PASSWORD, make_settings, signup_and_login, threat_config


class TestLocalAuth:
    """Signup, login and session handling."""

    @pytest.mark.asyncio
    async def test_signup_stores_hash_outside_session_pointer(
        self, local_engine: LocalEngine, store: KeyValueStore
    ) -> None:
        session = AuthSession()
        result = await local_engine.signup(session, "New@Example.com", TEST_PASSWORD, "New", "User", "Acme")

        assert result.success
        assert result.data.email == "new@example.com"
        assert result.data.tier is UserTier.FREE
        assert result.data.role is UserRole.ANALYST
        # signup does not log in
        assert session.is_authenticated is False
        assert store.get_item(StorageKeys.CURRENT_USER) is None

        stored_users = store.read_json(StorageKeys.USERS, [])
        assert stored_users[0]["passwordHash"].startswith("$2b$")

    @pytest.mark.asyncio
    async def test_login_sets_current_user_pointer(self, local_engine: LocalEngine, store: KeyValueStore) -> None:
        session, user = await signup_and_login(local_engine)

        pointer = store.read_json(StorageKeys.CURRENT_USER, None)
        assert pointer["id"] == user.id
        assert "passwordHash" not in pointer
        assert session.user_id == user.id

    @pytest.mark.asyncio
    async def test_wrong_password_is_rejected(self, local_engine: LocalEngine) -> None:
        await signup_and_login(local_engine)
        session = AuthSession()

        result = await local_engine.login(session, "analyst@example.com", "not-the-password")

        assert result.success is False
        assert result.code == "auth_error"
        assert result.message == "Invalid email or password"
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_get_current_user_without_session(self, local_engine: LocalEngine) -> None:
        result = await local_engine.get_current_user(AuthSession())

        assert result.success
        assert result.data is None

    @pytest.mark.asyncio
    async def test_foreign_token_is_not_a_session(self, local_engine: LocalEngine) -> None:
        result = await local_engine.get_current_user(AuthSession(access_token="not.a.token"))

        assert result.success
        assert result.data is None

    @pytest.mark.asyncio
    async def test_logout_clears_pointer(self, local_engine: LocalEngine, store: KeyValueStore) -> None:
        session, _ = await signup_and_login(local_engine)

        result = await local_engine.logout(session)

        assert result.success
        assert store.get_item(StorageKeys.CURRENT_USER) is None
        assert (await local_engine.get_current_user(session)).data is None

    @pytest.mark.asyncio
    async def test_restore_session_from_pointer(self, store: KeyValueStore, local_engine: LocalEngine) -> None:
        _, user = await signup_and_login(local_engine)

        restored = await LocalEngine(store=store, settings=local_engine.settings).restore_session()

        assert restored.user_id == user.id
        current = await local_engine.get_current_user(restored)
        assert current.data.id == user.id

    @pytest.mark.asyncio
    async def test_demo_login_refused_outside_demo_hosts(self, local_engine: LocalEngine) -> None:
        result = await local_engine.login(AuthSession(), DEMO_EMAIL, "anything")

        assert result.success is False
        assert result.code == "auth_error"


class TestDemoAccount:
    @pytest.mark.asyncio
    async def test_demo_login_without_password_and_role_repair(self) -> None:
        store = KeyValueStore()
        settings = make_settings(hostname="demo.example.com")
        assert seed_demo_credentials(store, settings) is True
        engine = LocalEngine(store=store, settings=settings)
        session = AuthSession()

        result = await engine.login(session, DEMO_EMAIL, "whatever")

        assert result.success
        assert result.data.tier is UserTier.PROFESSIONAL
        assert result.data.role is UserRole.ANALYST
        # the repaired role was written back
        demo = next(u for u in store.read_json(StorageKeys.USERS, []) if u["id"] == DEMO_USER_ID)
        assert demo["role"] == "analyst"

    @pytest.mark.asyncio
    async def test_seeded_flat_records_are_readable(self) -> None:
        store = KeyValueStore()
        settings = make_settings(hostname="demo.example.com")
        seed_demo_credentials(store, settings)
        engine = LocalEngine(store=store, settings=settings)
        session = AuthSession()
        await engine.login(session, DEMO_EMAIL, "whatever")

        listed = await engine.list_assessments(session)

        assert listed.success
        assert len(listed.data) == 4
        assert {r.status for r in listed.data} == {AssessmentStatus.IN_PROGRESS, AssessmentStatus.COMPLETED}
        # newest first
        created = [r.created_at for r in listed.data]
        assert created == sorted(created, reverse=True)

    @pytest.mark.asyncio
    async def test_demo_address_cannot_be_registered(self) -> None:
        store = KeyValueStore()
        engine = LocalEngine(store=store, settings=make_settings(environment="production"))

        result = await engine.signup(AuthSession(), DEMO_EMAIL, TEST_PASSWORD, "Not", "Demo", "Acme")

        assert result.code == "duplicate_account"
        assert store.read_json(StorageKeys.USERS, []) == []

    @pytest.mark.asyncio
    async def test_password_bypass_requires_the_demo_account(self) -> None:
        store = KeyValueStore()
        store.write_json(
            StorageKeys.USERS,
            [{"id": "someone-else", "email": DEMO_EMAIL, "firstName": "Not", "lastName": "Demo", "passwordHash": None}],
        )
        engine = LocalEngine(store=store, settings=make_settings(hostname="demo.example.com"))

        result = await engine.login(AuthSession(), DEMO_EMAIL, "whatever")

        assert result.code == "auth_error"

    def test_seed_refused_in_production(self) -> None:
        store = KeyValueStore()
        assert seed_demo_credentials(store, make_settings(environment="production")) is False
        assert store.keys() == []


class TestLocalAssessments:
    @pytest.mark.asyncio
    async def test_used_assessments_initialized_on_signup(self, local_engine: LocalEngine) -> None:
        session, _ = await signup_and_login(local_engine)

        used = await local_engine.get_used_assessments(session)

        assert used.success
        assert used.data == {
            "threat-intelligence": False,
            "supply-chain-risk": False,
            "compliance-management": False,
            "training-awareness": False,
        }

    @pytest.mark.asyncio
    async def test_create_marks_entitlement_used(self, local_engine: LocalEngine) -> None:
        session, _ = await signup_and_login(local_engine)

        created = await local_engine.create_assessment(session, threat_config())
        used = await local_engine.get_used_assessments(session)

        assert created.success
        assert used.data["threat-intelligence"] is True

    @pytest.mark.asyncio
    async def test_deleting_does_not_restore_entitlement(self, local_engine: LocalEngine) -> None:
        session, _ = await signup_and_login(local_engine)
        created = await local_engine.create_assessment(session, threat_config())

        await local_engine.delete_assessment(session, created.data.id)
        again = await local_engine.create_assessment(session, threat_config("Second try"))

        assert again.success is False
        assert again.code == "quota_exceeded"

    @pytest.mark.asyncio
    async def test_unreadable_store_becomes_backend_unavailable(
        self, local_engine: LocalEngine, store: KeyValueStore
    ) -> None:
        session, _ = await signup_and_login(local_engine)
        store.set_item(StorageKeys.ASSESSMENTS, "{not json")

        result = await local_engine.list_assessments(session)

        assert result.success is False
        assert result.code == "backend_unavailable"
        assert result.message == "An error occurred while fetching assessments"

    @pytest.mark.asyncio
    async def test_store_file_persists_between_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        settings = make_settings()
        engine = LocalEngine(store=KeyValueStore(path), settings=settings)
        session, _ = await signup_and_login(engine)
        created = await engine.create_assessment(session, threat_config())

        reopened = LocalEngine(store=KeyValueStore(path), settings=settings)
        fetched = await reopened.get_assessment(session, created.data.id)

        assert fetched.success
        assert fetched.data.name == "Q1 threat review"
        assert StorageKeys.USERS in json.loads(path.read_text(encoding="utf-8"))

    @pytest.mark.asyncio
    async def test_latency_is_scaled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        monkeypatch.setattr(local_engine_module, "asyncio", SimpleNamespace(sleep=fake_sleep))
        engine = LocalEngine(store=KeyValueStore(), settings=make_settings(local_latency_scale=0.5))

        await engine.get_current_user(AuthSession())

        assert delays == [pytest.approx(0.15)]


class TestLocalEntitlementRace:
    @pytest.mark.asyncio
    async def test_concurrent_creates_claim_once(self, local_engine: LocalEngine) -> None:
        """The check and the flag write never interleave across coroutines."""
        import asyncio

        session, _ = await signup_and_login(local_engine)

        results = await asyncio.gather(
            local_engine.create_assessment(session, threat_config("First")),
            local_engine.create_assessment(session, threat_config("Second")),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert len((await local_engine.list_assessments(session)).data) == 1


class TestLocalStoredData:
    """Records written by older builds, or edited by hand, stay readable."""

    @pytest.mark.asyncio
    async def test_offsetless_timestamps_sort_with_new_records(
        self, local_engine: LocalEngine, store: KeyValueStore
    ) -> None:
        session, user = await signup_and_login(local_engine)
        created = await local_engine.create_assessment(session, threat_config())
        assessments = store.read_json(StorageKeys.ASSESSMENTS, [])
        assessments.append(
            {
                "id": "old-flat",
                "name": "Old vendor review",
                "domain": "supply-chain-risk",
                "status": "completed",
                "progress": 100,
                "score": 3.5,
                "lastUpdated": "2024-01-05",
                "userId": user.id,
            }
        )
        store.write_json(StorageKeys.ASSESSMENTS, assessments)

        listed = await local_engine.list_assessments(session)

        assert listed.success
        assert [r.id for r in listed.data] == [created.data.id, "old-flat"]

    @pytest.mark.asyncio
    async def test_non_object_scores_read_as_empty(self, local_engine: LocalEngine, store: KeyValueStore) -> None:
        session, _ = await signup_and_login(local_engine)
        created = await local_engine.create_assessment(session, threat_config())
        assessments = store.read_json(StorageKeys.ASSESSMENTS, [])
        assessments[0]["scores"] = [1, 2]
        assessments[0]["config"] = "not an object"
        store.write_json(StorageKeys.ASSESSMENTS, assessments)

        listed = await local_engine.list_assessments(session)
        fetched = await local_engine.get_assessment(session, created.data.id)

        assert listed.success
        assert listed.data[0].scores == {"progress": 0, "score": 0}
        assert fetched.data.domain == "threat-intelligence"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        ['{"id": "not-a-list"}', '["not-a-record"]', '[{"name": "no id"}]'],
    )
    async def test_misshapen_collection_becomes_backend_unavailable(
        self, local_engine: LocalEngine, store: KeyValueStore, raw: str
    ) -> None:
        session, _ = await signup_and_login(local_engine)
        store.set_item(StorageKeys.ASSESSMENTS, raw)

        result = await local_engine.list_assessments(session)

        assert result.code == "backend_unavailable"
        assert result.message == "An error occurred while fetching assessments"

    @pytest.mark.asyncio
    async def test_programming_errors_are_not_reported_as_unavailable(
        self, local_engine: LocalEngine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session, _ = await signup_and_login(local_engine)

        def broken(record: object) -> object:
            raise TypeError("bug")

        monkeypatch.setattr(local_engine_module, "_sort_key", broken)
        await local_engine.create_assessment(session, threat_config())

        with pytest.raises(TypeError):
            await local_engine.list_assessments(session)
