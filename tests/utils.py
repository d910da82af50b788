import asyncio

from ci_pipelines.exceptions import ScmProviderError
from ci_pipelines.models import Permissions
from ci_pipelines.scm import ScmProvider


class FakeScm(ScmProvider):
    """SCM provider that resolves a checkout url to itself."""

    name = "fake"

    def __init__(self, admin_tokens=(), files=None, unknown_urls=()):
        self.admin_tokens = set(admin_tokens)
        self.files = files or {}
        self.unknown_urls = set(unknown_urls)
        self.parse_url_calls = []

    async def parse_url(self, checkout_url: str, token: str) -> str:
        self.parse_url_calls.append((checkout_url, token))
        await asyncio.sleep(0)
        if checkout_url in self.unknown_urls:
            raise ScmProviderError(f"Repository {checkout_url} not found", 404)
        return checkout_url

    async def get_permissions(self, scm_uri: str, token: str) -> Permissions:
        await asyncio.sleep(0)
        admin = token in self.admin_tokens
        return Permissions(admin=admin, push=admin, pull=True)

    async def get_file(self, scm_uri: str, path: str, token: str) -> str | None:
        await asyncio.sleep(0)
        return self.files.get((scm_uri, path))
