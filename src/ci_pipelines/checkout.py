import re

from ci_pipelines.exceptions import InvalidLocatorError
from ci_pipelines.models import CheckoutUrl

DEFAULT_BRANCH = "master"

# groups: host, org, repo, "#branch"
CHECKOUT_URL = re.compile(
    r"^(?:(?:https://(?:[^@/:\s]+@)?)|git@)([^/:\s]+)(?:/|:)([^/:\s]+)/([^\s]+?)(?:\.git)(#[^\s]*)?$",
    re.IGNORECASE,
)


def _match(checkout_url: str) -> re.Match:
    matched = CHECKOUT_URL.fullmatch(checkout_url)
    if matched is None:
        raise InvalidLocatorError(
            f"Invalid checkout url: {checkout_url}", checkoutUrl=checkout_url
        )
    return matched


def format_checkout_url(checkout_url: str) -> str:
    """
    Canonicalize a checkout url so it can be used as a repository identity.

    Everything before the ``#`` is lowercased, the branch keeps its case and
    defaults to ``master`` when omitted.

    Args:
        checkout_url: e.g. ``git@github.com:org/Repo.git#Feature``

    Returns:
        The normalized url, e.g. ``git@github.com:org/repo.git#Feature``
    """
    matched = _match(checkout_url)
    branch = matched.group(4)

    # a bare "#" counts as no branch
    if not branch or branch == "#":
        branch = f"#{DEFAULT_BRANCH}"

    address, _, _ = checkout_url.partition("#")
    return address.lower() + branch


def parse_checkout_url(checkout_url: str) -> CheckoutUrl:
    matched = _match(format_checkout_url(checkout_url))
    host, org, repo, branch = matched.groups()
    return CheckoutUrl(host=host, org=org, repo=repo, branch=branch[1:])
