from urllib.parse import quote

import aiohttp
import gidgetlab
import gidgetlab.aiohttp
from gidgetlab.abc import GitLabAPI
from sanic.log import logger

from ci_pipelines import metrics
from ci_pipelines.checkout import parse_checkout_url
from ci_pipelines.config import Config
from ci_pipelines.exceptions import ScmProviderError
from ci_pipelines.models import Permissions, ScmUri
from ci_pipelines.scm import ScmProvider, decode_content

# https://docs.gitlab.com/ee/api/members.html#roles
REPORTER_ACCESS = 20
DEVELOPER_ACCESS = 30
MAINTAINER_ACCESS = 40


def access_level(project) -> int:
    permissions = project.get("permissions") or {}
    levels = [
        (permissions.get(key) or {}).get("access_level", 0)
        for key in ("project_access", "group_access")
    ]
    return max(levels)


class GitLab(ScmProvider):
    name = "gitlab"

    def __init__(self, session: aiohttp.ClientSession, config: Config):
        self.session = session
        self.config = config

    def client(self, token: str) -> GitLabAPI:
        return gidgetlab.aiohttp.GitLabAPI(
            self.session,
            requester="ci-pipelines",
            access_token=token,
            url=self.config.SCM_API_URL,
        )

    async def _getitem(self, gl: GitLabAPI, url: str, endpoint: str):
        with metrics.track_scm_api_call(self.name, endpoint):
            try:
                return await gl.getitem(url)
            except gidgetlab.GitLabException as e:
                status_code = getattr(e, "status_code", None)
                logger.debug("GitLab request %s failed: %s (%s)", url, e, status_code)
                raise ScmProviderError(
                    f"GitLab request {url} failed: {e}",
                    status_code=int(status_code) if status_code else None,
                ) from e
            except aiohttp.ClientError as e:
                raise ScmProviderError(f"GitLab request {url} failed: {e}") from e

    async def parse_url(self, checkout_url: str, token: str) -> str:
        checkout = parse_checkout_url(checkout_url)
        if checkout.host != self.config.SCM_HOSTNAME:
            raise ScmProviderError(
                f"Host {checkout.host} is not supported, expected {self.config.SCM_HOSTNAME}"
            )

        project_path = quote(f"{checkout.org}/{checkout.repo}", safe="")
        logger.debug("Looking up project %s", project_path)
        project = await self._getitem(
            self.client(token), f"/projects/{project_path}", "projects"
        )

        scm_uri = ScmUri(
            host=checkout.host, repo_id=str(project["id"]), branch=checkout.branch
        )
        return str(scm_uri)

    async def get_permissions(self, scm_uri: str, token: str) -> Permissions:
        uri = ScmUri.parse(scm_uri)
        project = await self._getitem(
            self.client(token), f"/projects/{uri.repo_id}", "projects"
        )
        level = access_level(project)
        logger.debug("Access level on project %s is %d", uri.repo_id, level)
        return Permissions(
            admin=level >= MAINTAINER_ACCESS,
            push=level >= DEVELOPER_ACCESS,
            pull=level >= REPORTER_ACCESS,
        )

    async def get_file(self, scm_uri: str, path: str, token: str) -> str | None:
        uri = ScmUri.parse(scm_uri)
        url = (
            f"/projects/{uri.repo_id}/repository/files/{quote(path, safe='')}"
            f"?ref={quote(uri.branch, safe='')}"
        )
        try:
            item = await self._getitem(self.client(token), url, "files")
        except ScmProviderError as e:
            if e.status_code == 404:
                logger.debug("File %s not found in %s", path, scm_uri)
                return None
            raise
        return decode_content(item)
