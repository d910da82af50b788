import abc
import base64

from ci_pipelines.models import Permissions


class ScmProvider(abc.ABC):
    """
    Source control provider used to resolve repositories and read their files.

    The bundled providers identify repositories by an scm uri of the form
    ``<host>:<repository id>:<branch>``. Callers must treat the scm uri as
    opaque and only compare it for equality; other providers may use a
    different shape, e.g. the normalized checkout url itself
    (``git@host:org/repo.git#master``).
    """

    name: str

    @abc.abstractmethod
    async def parse_url(self, checkout_url: str, token: str) -> str:
        """Resolve a normalized checkout url to an scm uri."""

    @abc.abstractmethod
    async def get_permissions(self, scm_uri: str, token: str) -> Permissions: ...

    @abc.abstractmethod
    async def get_file(self, scm_uri: str, path: str, token: str) -> str | None:
        """Return the contents of ``path`` on the scm uri's branch, None if absent."""


def decode_content(item: dict) -> str:
    if item.get("encoding", "base64") != "base64":
        return item["content"]
    return base64.b64decode(item["content"]).decode()
