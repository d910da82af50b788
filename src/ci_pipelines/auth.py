from sanic import Request
from sanic.log import logger

from ci_pipelines.exceptions import AuthenticationError
from ci_pipelines.signature import Signature


def make_token(username: str, secret: bytes) -> str:
    """Issue an API token of the form ``<username>.<signature>``."""
    return f"{username}.{Signature(secret).create(username)}"


def verify_token(token: str, secret: bytes) -> str:
    username, sep, signature = token.rpartition(".")
    if not sep or not username or not signature:
        raise AuthenticationError("Malformed token")

    if not Signature(secret).verify(username, signature):
        logger.warning("Token signature mismatch for user %s", username)
        raise AuthenticationError("Invalid token")

    return username


def authenticate(request: Request, secret: bytes) -> str:
    """Return the username behind the request's bearer token."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Missing authentication")

    return verify_token(token.strip(), secret)
