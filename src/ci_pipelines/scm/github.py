from urllib.parse import quote

import aiohttp
import gidgethub
from gidgethub import aiohttp as gh_aiohttp
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from ci_pipelines import metrics
from ci_pipelines.checkout import parse_checkout_url
from ci_pipelines.config import Config
from ci_pipelines.exceptions import ScmProviderError
from ci_pipelines.models import Permissions, ScmUri
from ci_pipelines.scm import ScmProvider, decode_content


class GitHub(ScmProvider):
    name = "github"

    def __init__(self, session: aiohttp.ClientSession, config: Config, cache=None):
        self.session = session
        self.config = config
        self.cache = cache

    def client(self, token: str) -> GitHubAPI:
        return gh_aiohttp.GitHubAPI(
            self.session,
            "ci-pipelines",
            oauth_token=token,
            cache=self.cache,
            base_url=self.config.SCM_API_URL,
        )

    async def _getitem(self, gh: GitHubAPI, url: str, endpoint: str):
        with metrics.track_scm_api_call(self.name, endpoint):
            try:
                return await gh.getitem(url)
            except gidgethub.GitHubException as e:
                status_code = getattr(e, "status_code", None)
                logger.debug("GitHub request %s failed: %s (%s)", url, e, status_code)
                raise ScmProviderError(
                    f"GitHub request {url} failed: {e}",
                    status_code=int(status_code) if status_code else None,
                ) from e
            except aiohttp.ClientError as e:
                raise ScmProviderError(f"GitHub request {url} failed: {e}") from e

    async def parse_url(self, checkout_url: str, token: str) -> str:
        checkout = parse_checkout_url(checkout_url)
        if checkout.host != self.config.SCM_HOSTNAME:
            raise ScmProviderError(
                f"Host {checkout.host} is not supported, expected {self.config.SCM_HOSTNAME}"
            )

        logger.debug("Looking up repository %s/%s", checkout.org, checkout.repo)
        repo = await self._getitem(
            self.client(token), f"/repos/{checkout.org}/{checkout.repo}", "repos"
        )

        scm_uri = ScmUri(
            host=checkout.host, repo_id=str(repo["id"]), branch=checkout.branch
        )
        return str(scm_uri)

    async def get_permissions(self, scm_uri: str, token: str) -> Permissions:
        uri = ScmUri.parse(scm_uri)
        repo = await self._getitem(
            self.client(token), f"/repositories/{uri.repo_id}", "repositories"
        )
        return Permissions.model_validate(repo.get("permissions", {}))

    async def get_file(self, scm_uri: str, path: str, token: str) -> str | None:
        uri = ScmUri.parse(scm_uri)
        url = f"/repositories/{uri.repo_id}/contents/{quote(path)}?ref={quote(uri.branch, safe='')}"
        try:
            item = await self._getitem(self.client(token), url, "contents")
        except ScmProviderError as e:
            if e.status_code == 404:
                logger.debug("File %s not found in %s", path, scm_uri)
                return None
            raise
        return decode_content(item)
