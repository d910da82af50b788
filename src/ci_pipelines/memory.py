import itertools
from datetime import datetime, timezone
from typing import Any

from sanic.log import logger

from ci_pipelines.exceptions import DuplicatePipelineError
from ci_pipelines.jobs import parse_job_names
from ci_pipelines.models import Permissions, PipelineConfig
from ci_pipelines.scm import ScmProvider
from ci_pipelines.stores import Pipeline, PipelineStore, User, UserStore


class MemoryUser(User):
    def __init__(self, username: str, token: str, scm: ScmProvider):
        self.username = username
        self._token = token
        self.scm = scm

    async def unseal_token(self) -> str:
        if not self._token:
            raise ValueError(f"No SCM token stored for user {self.username}")
        return self._token

    async def get_permissions(self, scm_uri: str) -> Permissions:
        token = await self.unseal_token()
        return await self.scm.get_permissions(scm_uri, token)


class MemoryUserStore(UserStore):
    def __init__(self, tokens: dict[str, str], scm: ScmProvider):
        self.users = {
            username: MemoryUser(username, token, scm)
            for username, token in tokens.items()
        }

    async def get(self, username: str) -> MemoryUser | None:
        return self.users.get(username)


class MemoryPipeline(Pipeline):
    def __init__(
        self, pipeline_id: int, config: PipelineConfig, store: "MemoryPipelineStore"
    ):
        self.id = pipeline_id
        self.scm_uri = config.scm_uri
        self.admins = dict(config.admins)
        self.jobs: list[str] = []
        self.create_time = datetime.now(timezone.utc)
        self.store = store

    async def sync(self) -> None:
        admin = next(iter(self.admins), None)
        if admin is None:
            raise ValueError(f"Pipeline {self.id} has no admins")

        user = await self.store.user_store.get(admin)
        if user is None:
            raise ValueError(f"Admin {admin} of pipeline {self.id} does not exist")

        token = await user.unseal_token()
        config_text = await self.store.scm.get_file(
            self.scm_uri, self.store.config_path, token
        )
        self.jobs = parse_job_names(config_text)
        logger.debug("Pipeline %d synced with jobs %s", self.id, self.jobs)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scmUri": self.scm_uri,
            "admins": dict(self.admins),
            "createTime": self.create_time.isoformat(),
            "jobs": list(self.jobs),
        }


class MemoryPipelineStore(PipelineStore):
    def __init__(
        self,
        user_store: UserStore,
        scm: ScmProvider,
        config_path: str = "screwdriver.yaml",
    ):
        self.user_store = user_store
        self.scm = scm
        self.config_path = config_path
        self.pipelines: dict[int, MemoryPipeline] = {}
        self._by_scm_uri: dict[str, int] = {}
        self._ids = itertools.count(1)

    async def get(self, pipeline_id: int) -> MemoryPipeline | None:
        return self.pipelines.get(pipeline_id)

    async def get_by_scm_uri(self, scm_uri: str) -> MemoryPipeline | None:
        pipeline_id = self._by_scm_uri.get(scm_uri)
        if pipeline_id is None:
            return None
        return self.pipelines[pipeline_id]

    async def create(self, config: PipelineConfig) -> MemoryPipeline:
        # check and insert must not be separated by a suspension point
        existing_id = self._by_scm_uri.get(config.scm_uri)
        if existing_id is not None:
            raise DuplicatePipelineError(config.scm_uri, existing_id)

        pipeline = MemoryPipeline(next(self._ids), config, self)
        self.pipelines[pipeline.id] = pipeline
        self._by_scm_uri[pipeline.scm_uri] = pipeline.id
        logger.debug("Stored pipeline %d for %s", pipeline.id, pipeline.scm_uri)
        return pipeline
