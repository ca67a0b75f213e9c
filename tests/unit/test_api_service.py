"""Façade tests, and the properties every engine must satisfy."""

from __future__ import annotations

import pytest
from src.core.config import get_settings
from src.domain.models import AssessmentStatus, AuthSession, LegacyStatus
from src.domain.ports import StoragePort
from src.domain.services import NIST_CSF_ASSESSMENT_CONFIG, ApiService, get_backend, reset_backend
from src.infrastructure.local import KeyValueStore, LocalEngine, StorageKeys
from src.infrastructure.remote import RemoteEngine

from tests.utils import TEST_PASSWORD, signup_and_login, supply_chain_config, threat_config


class TestEngineSelector:
    """The backend is chosen once from settings and then reused."""

    def test_local_mode_builds_local_engine(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BACKEND_MODE", "local")
        get_settings.cache_clear()
        try:
            backend = get_backend()
            assert isinstance(backend, LocalEngine)
            assert get_backend() is backend
        finally:
            get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_unconfigured_remote_fails_per_call(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BACKEND_MODE", "supabase")
        monkeypatch.setenv("REMOTE_URL", "")
        monkeypatch.setenv("REMOTE_ANON_KEY", "")
        get_settings.cache_clear()
        try:
            backend = get_backend()
            assert isinstance(backend, RemoteEngine)

            listed = await backend.list_assessments(AuthSession())
            login = await backend.login(AuthSession(), "a@example.com", "password123")
        finally:
            get_settings.cache_clear()
            reset_backend()

        assert listed.code == "configuration_error"
        assert listed.message == "Remote backend not configured"
        assert login.code == "auth_error"

    def test_nist_config_constant(self) -> None:
        assert NIST_CSF_ASSESSMENT_CONFIG.domain == "nist-csf"
        assert NIST_CSF_ASSESSMENT_CONFIG.frameworks == ("nist-csf-2",)
        assert NIST_CSF_ASSESSMENT_CONFIG.regions == ("global",)


class TestStorageProperties:
    """Run against both engines through the ``engine`` fixture."""

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, engine: StoragePort) -> None:
        session, _ = await signup_and_login(engine)

        first = await engine.logout(session)
        second = await engine.logout(session)

        assert first.success and second.success
        assert (await engine.logout(AuthSession())).success

    @pytest.mark.asyncio
    async def test_ownership_isolation(self, engine: StoragePort) -> None:
        owner, _ = await signup_and_login(engine, "owner@example.com")
        other, _ = await signup_and_login(engine, "other@example.com")
        created = await engine.create_assessment(owner, threat_config())
        assessment_id = created.data.id

        fetched = await engine.get_assessment(other, assessment_id)
        listed = await engine.list_assessments(other)
        updated = await engine.update_assessment(other, assessment_id, {"name": "Hijacked"})
        deleted = await engine.delete_assessment(other, assessment_id)
        missing = await engine.get_assessment(other, "does-not-exist")

        assert fetched.code == "not_found"
        assert listed.data == []
        assert updated.code == "not_found"
        assert deleted.code == "not_found"
        # foreign and missing ids are indistinguishable
        assert fetched.message == missing.message
        assert (await engine.get_assessment(owner, assessment_id)).data.name == "Q1 threat review"

    @pytest.mark.asyncio
    async def test_free_tier_single_use(self, engine: StoragePort) -> None:
        session, _ = await signup_and_login(engine)

        first = await engine.create_assessment(session, threat_config())
        second = await engine.create_assessment(session, threat_config("Again"))
        other_domain = await engine.create_assessment(session, supply_chain_config())

        assert first.success
        assert first.data.status is not AssessmentStatus.COMPLETED
        assert first.data.scores["progress"] == 0
        assert second.code == "quota_exceeded"
        assert other_domain.code == "quota_exceeded"
        assert "CyberCaution" in other_domain.message

    @pytest.mark.asyncio
    async def test_wrong_domain_rejected_before_any_use(self, engine: StoragePort) -> None:
        session, _ = await signup_and_login(engine)

        result = await engine.create_assessment(session, supply_chain_config())

        assert result.code == "quota_exceeded"
        assert (await engine.get_used_assessments(session)).data["threat-intelligence"] is False

    @pytest.mark.asyncio
    async def test_duplicate_signup_rejected(self, engine: StoragePort) -> None:
        _, first_user = await signup_and_login(engine, "dupe@example.com", first_name="Original")

        again = await engine.signup(AuthSession(), "DUPE@example.com", TEST_PASSWORD, "Imposter", "X", "Y")

        assert again.code == "duplicate_account"
        assert again.message == "User with this email already exists"
        session = AuthSession()
        login = await engine.login(session, "dupe@example.com", TEST_PASSWORD)
        assert login.data.first_name == "Original"
        assert login.data.id == first_user.id

    @pytest.mark.asyncio
    async def test_unauthenticated_calls_fail(self, engine: StoragePort) -> None:
        result = await engine.create_assessment(AuthSession(), threat_config())

        assert result.code == "auth_error"
        assert result.message == "Authentication required"

    @pytest.mark.asyncio
    async def test_invalid_config_is_a_validation_error(self, engine: StoragePort) -> None:
        session, _ = await signup_and_login(engine)

        result = await engine.create_assessment(session, {**threat_config(), "frameworks": []})

        assert result.code == "validation_error"

    @pytest.mark.asyncio
    async def test_signup_validation_error(self, engine: StoragePort) -> None:
        result = await engine.signup(AuthSession(), "not-an-email", TEST_PASSWORD, "A", "B", "")
        assert result.code == "validation_error"

    @pytest.mark.asyncio
    async def test_read_after_write(self, engine: StoragePort) -> None:
        session, _ = await signup_and_login(engine)
        created = await engine.create_assessment(session, threat_config())

        updated = await engine.update_assessment(
            session, created.data.id, {"status": "completed", "scores": {"progress": 100, "score": 3.9}}
        )
        fetched = await engine.get_assessment(session, created.data.id)

        assert updated.success
        assert fetched.data.status is AssessmentStatus.COMPLETED
        assert fetched.data.progress == 100
        assert fetched.data.score == 3.9
        assert fetched.data.created_at == created.data.created_at


class TestLegacyFacade:
    """Flat-shape conversion happens only in the façade."""

    @pytest.mark.asyncio
    async def test_example_scenario_through_facade(self, engine: StoragePort) -> None:
        service = ApiService(engine)
        session = AuthSession()
        await service.signup(session, "u@example.com", TEST_PASSWORD, "U", "User", "Acme")
        await service.login(session, "u@example.com", TEST_PASSWORD)

        created = await service.create_assessment(session, threat_config())
        assert created.success
        assert created.data.status is not AssessmentStatus.COMPLETED
        assert created.data.scores["progress"] == 0

        assert (await service.create_assessment(session, threat_config())).code == "quota_exceeded"
        assert (await service.create_assessment(session, supply_chain_config())).code == "quota_exceeded"

    @pytest.mark.asyncio
    async def test_legacy_get_and_update(self, engine: StoragePort) -> None:
        service = ApiService(engine)
        session, _ = await signup_and_login(engine)
        created = await service.create_assessment(session, threat_config())

        legacy = await service.get_assessment(session, created.data.id)
        assert legacy.data.status is LegacyStatus.IN_PROGRESS
        assert legacy.data.progress == 0
        assert legacy.data.frameworks == ["nist-csf"]

        updated = await service.update_assessment(
            session, created.data.id, {"status": "completed", "progress": 100, "score": 4.1}
        )
        assert updated.success
        assert updated.data.status is AssessmentStatus.COMPLETED

        listed = await service.get_assessments(session)
        assert [(a.status, a.progress, a.score) for a in listed.data] == [(LegacyStatus.COMPLETED, 100, 4.1)]

    @pytest.mark.asyncio
    async def test_legacy_update_with_unknown_status_fails(self, engine: StoragePort) -> None:
        service = ApiService(engine)
        session, _ = await signup_and_login(engine)
        created = await service.create_assessment(session, threat_config())

        result = await service.update_assessment(session, created.data.id, {"status": "paused"})

        assert result.success is False
        assert result.code == "status_mapping_error"

    @pytest.mark.asyncio
    async def test_archived_record_cannot_be_shown_flat(self, engine: StoragePort) -> None:
        service = ApiService(engine)
        session, _ = await signup_and_login(engine)
        created = await service.create_assessment(session, threat_config())
        await service.update_assessment_record(session, created.data.id, {"status": "archived"})

        result = await service.get_assessment(session, created.data.id)

        assert result.success is False
        assert result.code == "status_mapping_error"

    @pytest.mark.asyncio
    async def test_one_archived_record_fails_the_flat_list(
        self, local_engine: LocalEngine, store: KeyValueStore
    ) -> None:
        service = ApiService(local_engine)
        session, user = await signup_and_login(local_engine)
        created = await service.create_assessment(session, threat_config())
        await service.update_assessment_record(session, created.data.id, {"status": "archived"})
        assessments = store.read_json(StorageKeys.ASSESSMENTS, [])
        assessments.append({"id": "flat-1", "name": "Vendor review", "domain": "supply-chain-risk", "userId": user.id})
        store.write_json(StorageKeys.ASSESSMENTS, assessments)

        flat = await service.get_assessments(session)
        canonical = await service.list_assessments(session)

        assert flat.code == "status_mapping_error"
        assert len(canonical.data) == 2

    @pytest.mark.asyncio
    async def test_legacy_not_started_write_is_rejected(self, engine: StoragePort) -> None:
        service = ApiService(engine)
        session, _ = await signup_and_login(engine)
        created = await service.create_assessment(session, threat_config())

        result = await service.update_assessment(session, created.data.id, {"status": "notStarted"})

        assert result.code == "validation_error"
