from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Stage(StrEnum):
    received = "RECEIVED"
    normalized = "NORMALIZED"
    user_resolved = "USER_RESOLVED"
    credential_unsealed = "CREDENTIAL_UNSEALED"
    scm_resolved = "SCM_RESOLVED"
    authorized = "AUTHORIZED"
    uniqueness_checked = "UNIQUENESS_CHECKED"
    created = "CREATED"
    synced = "SYNCED"
    responded = "RESPONDED"


class CreatePipelineRequest(BaseModel):
    checkout_url: str = Field(alias="checkoutUrl", min_length=1)


class CheckoutUrl(BaseModel):
    host: str
    org: str
    repo: str
    branch: str


class ScmUri(BaseModel):
    host: str
    repo_id: str
    branch: str

    @classmethod
    def parse(cls, scm_uri: str) -> "ScmUri":
        host, repo_id, branch = scm_uri.split(":", 2)
        return cls(host=host, repo_id=repo_id, branch=branch)

    def __str__(self) -> str:
        return f"{self.host}:{self.repo_id}:{self.branch}"


class Permissions(BaseModel):
    admin: bool = False
    push: bool = False
    pull: bool = False


class PipelineConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    scm_uri: str
    admins: dict[str, bool]

    @classmethod
    def for_creator(cls, scm_uri: str, username: str) -> "PipelineConfig":
        return cls(scm_uri=scm_uri, admins={username: True})
