import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from ci_pipelines.exceptions import (
    ConflictError,
    CreationError,
    CredentialUnavailableError,
    InvalidLocatorError,
    PipelineError,
    ScmResolutionError,
    SyncError,
    UnauthorizedError,
    UserNotFoundError,
)
from ci_pipelines.models import Permissions, PipelineConfig
from ci_pipelines.workflow import PipelineCreator
from tests.utils import FakeScm


CHECKOUT_URL = "git@example.com:org/repo.git"
SCM_URI = "git@example.com:org/repo.git#master"


@pytest.mark.asyncio
async def test_create_success(creator, pipeline_store, scm):
    pipeline = await creator.create("git@Example.com:org/Repo.git", "alice")

    assert pipeline.id == 1
    assert pipeline.scm_uri == SCM_URI
    assert pipeline.admins == {"alice": True}
    # no configuration file in the repository
    assert pipeline.jobs == ["main"]

    assert await pipeline_store.get_by_scm_uri(SCM_URI) is pipeline
    assert scm.parse_url_calls == [(SCM_URI, "alice-token")]


@pytest.mark.asyncio
async def test_create_derives_jobs_from_configuration(creator, scm):
    scm.files[(SCM_URI, "screwdriver.yaml")] = (
        "jobs:\n  main:\n    steps: []\n  publish:\n    steps: []\n"
    )

    pipeline = await creator.create(CHECKOUT_URL, "alice")

    assert pipeline.jobs == ["main", "publish"]


@pytest.mark.asyncio
async def test_create_invalid_locator(creator, scm):
    with pytest.raises(InvalidLocatorError) as excinfo:
        await creator.create("not-a-url", "alice")

    assert excinfo.value.stage == "RECEIVED"
    assert scm.parse_url_calls == []


@pytest.mark.asyncio
async def test_create_unknown_user(creator, scm):
    with pytest.raises(UserNotFoundError) as excinfo:
        await creator.create(CHECKOUT_URL, "mallory")

    assert excinfo.value.stage == "NORMALIZED"
    assert scm.parse_url_calls == []


@pytest.mark.asyncio
async def test_create_credential_unavailable(pipeline_store, scm):
    user = Mock()
    user.username = "alice"
    user.unseal_token = AsyncMock(side_effect=RuntimeError("cannot decrypt"))
    user_store = Mock()
    user_store.get = AsyncMock(return_value=user)

    creator = PipelineCreator(user_store, pipeline_store, scm)

    with pytest.raises(CredentialUnavailableError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.stage == "USER_RESOLVED"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert scm.parse_url_calls == []


@pytest.mark.asyncio
async def test_create_scm_resolution_failure(creator, scm, pipeline_store):
    scm.unknown_urls.add(SCM_URI)

    with pytest.raises(ScmResolutionError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.stage == "CREDENTIAL_UNSEALED"
    assert "not found" in excinfo.value.to_payload()["data"]["cause"]
    assert pipeline_store.pipelines == {}


@pytest.mark.asyncio
async def test_create_not_admin(creator, pipeline_store, monkeypatch):
    get_by_scm_uri = AsyncMock(return_value=None)
    create = AsyncMock()
    monkeypatch.setattr(pipeline_store, "get_by_scm_uri", get_by_scm_uri)
    monkeypatch.setattr(pipeline_store, "create", create)

    with pytest.raises(UnauthorizedError) as excinfo:
        await creator.create(CHECKOUT_URL, "bob")

    assert excinfo.value.username == "bob"
    assert excinfo.value.scm_uri == SCM_URI
    assert "User bob is not an admin of this repo" == str(excinfo.value)
    assert excinfo.value.stage == "SCM_RESOLVED"
    get_by_scm_uri.assert_not_called()
    create.assert_not_called()


@pytest.mark.asyncio
async def test_create_permission_lookup_failure(creator, scm, monkeypatch):
    monkeypatch.setattr(
        scm, "get_permissions", AsyncMock(side_effect=RuntimeError("boom"))
    )

    with pytest.raises(ScmResolutionError):
        await creator.create(CHECKOUT_URL, "alice")


@pytest.mark.asyncio
async def test_create_conflict(creator, pipeline_store, monkeypatch):
    existing = await pipeline_store.create(
        PipelineConfig.for_creator(SCM_URI, "someone")
    )
    create = AsyncMock()
    monkeypatch.setattr(pipeline_store, "create", create)

    with pytest.raises(ConflictError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.pipeline_id == existing.id
    assert str(excinfo.value) == f"Pipeline already exists: {existing.id}"
    assert excinfo.value.stage == "AUTHORIZED"
    create.assert_not_called()


@pytest.mark.asyncio
async def test_create_store_constraint_maps_to_conflict(
    creator, pipeline_store, monkeypatch
):
    existing = await pipeline_store.create(
        PipelineConfig.for_creator(SCM_URI, "someone")
    )
    # simulate a concurrent request slipping past the guard
    monkeypatch.setattr(pipeline_store, "get_by_scm_uri", AsyncMock(return_value=None))

    with pytest.raises(ConflictError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.pipeline_id == existing.id
    assert excinfo.value.stage == "UNIQUENESS_CHECKED"
    assert len(pipeline_store.pipelines) == 1


@pytest.mark.asyncio
async def test_create_storage_failure(creator, pipeline_store, monkeypatch):
    monkeypatch.setattr(
        pipeline_store, "create", AsyncMock(side_effect=OSError("disk full"))
    )

    with pytest.raises(CreationError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.status_code == 500
    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_create_sync_failure_keeps_pipeline(creator, pipeline_store, scm):
    scm.files[(SCM_URI, "screwdriver.yaml")] = "- not\n- a mapping\n"

    with pytest.raises(SyncError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.stage == "CREATED"
    pipeline = await pipeline_store.get_by_scm_uri(SCM_URI)
    assert pipeline is not None
    assert excinfo.value.pipeline_id == pipeline.id
    assert excinfo.value.to_payload()["data"]["pipelineId"] == pipeline.id


@pytest.mark.asyncio
async def test_stages_run_in_order(pipeline_store):
    calls = []

    user = Mock()
    user.username = "alice"

    async def unseal_token():
        calls.append("unseal")
        return "token"

    async def get_permissions(scm_uri):
        calls.append("permissions")
        return Permissions(admin=True)

    user.unseal_token = unseal_token
    user.get_permissions = get_permissions

    user_store = Mock()

    async def get_user(username):
        calls.append("user")
        return user

    user_store.get = get_user

    scm = FakeScm()
    original_parse_url = scm.parse_url

    async def parse_url(checkout_url, token):
        calls.append("parse_url")
        return await original_parse_url(checkout_url, token)

    scm.parse_url = parse_url

    store = Mock()

    async def get_by_scm_uri(scm_uri):
        calls.append("get")
        return None

    pipeline = Mock()
    pipeline.id = 7
    pipeline.scm_uri = SCM_URI

    async def sync():
        calls.append("sync")

    pipeline.sync = sync

    async def create(config):
        calls.append("create")
        assert config.admins == {"alice": True}
        assert config.scm_uri == SCM_URI
        return pipeline

    store.get_by_scm_uri = get_by_scm_uri
    store.create = create

    creator = PipelineCreator(user_store, store, scm)
    assert await creator.create(CHECKOUT_URL, "alice") is pipeline

    assert calls == [
        "user",
        "unseal",
        "parse_url",
        "permissions",
        "get",
        "create",
        "sync",
    ]


@pytest.mark.asyncio
async def test_concurrent_duplicate_creation(creator, pipeline_store):
    results = await asyncio.gather(
        creator.create(CHECKOUT_URL, "alice"),
        creator.create("git@EXAMPLE.com:org/repo.git#master", "alice"),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 1
    assert conflicts[0].pipeline_id == created[0].id
    assert len(pipeline_store.pipelines) == 1


@pytest.mark.asyncio
async def test_create_user_store_failure(pipeline_store, scm):
    user_store = Mock()
    user_store.get = AsyncMock(side_effect=ConnectionError("db down"))

    creator = PipelineCreator(user_store, pipeline_store, scm)

    with pytest.raises(PipelineError) as excinfo:
        await creator.create(CHECKOUT_URL, "alice")

    assert excinfo.value.status_code == 500
    assert excinfo.value.stage == "NORMALIZED"
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert scm.parse_url_calls == []
