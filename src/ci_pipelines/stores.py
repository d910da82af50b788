"""
Interfaces of the collaborators used by the pipeline creation workflow.

Implementations live in :mod:`ci_pipelines.memory` (bundled) or can be
provided by any persistence layer that honours these contracts.
"""

import abc
from typing import Any

from ci_pipelines.models import Permissions, PipelineConfig


class User(abc.ABC):
    username: str

    @abc.abstractmethod
    async def unseal_token(self) -> str:
        """Return a short-lived plaintext SCM credential."""

    @abc.abstractmethod
    async def get_permissions(self, scm_uri: str) -> Permissions:
        """Return the user's permissions on the repository behind ``scm_uri``."""


class UserStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, username: str) -> User | None: ...


class Pipeline(abc.ABC):
    id: int
    scm_uri: str
    admins: dict[str, bool]
    jobs: list[str]

    @abc.abstractmethod
    async def sync(self) -> None:
        """Derive and persist the job definitions of this pipeline."""

    @abc.abstractmethod
    def to_json(self) -> dict[str, Any]: ...


class PipelineStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, pipeline_id: int) -> Pipeline | None: ...

    @abc.abstractmethod
    async def get_by_scm_uri(self, scm_uri: str) -> Pipeline | None: ...

    @abc.abstractmethod
    async def create(self, config: PipelineConfig) -> Pipeline:
        """
        Persist a new pipeline.

        Raises:
            DuplicatePipelineError: a pipeline with the same scm uri exists
        """
