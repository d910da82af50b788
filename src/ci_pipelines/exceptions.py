from typing import Any


class PipelineError(ValueError):
    """Base class for all errors surfaced by the pipeline creation workflow."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str, **data: Any):
        super().__init__(message)
        self.message = message
        self.data = data
        # set by the workflow to the last stage that completed before failure
        self.stage: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "statusCode": self.status_code,
            "error": self.error,
            "message": self.message,
        }
        data = dict(self.data)
        if self.__cause__ is not None:
            data["cause"] = f"{type(self.__cause__).__name__}: {self.__cause__}"
        if self.stage is not None:
            data["stage"] = self.stage
        if data:
            payload["data"] = data
        return payload


class InvalidLocatorError(PipelineError):
    """Raised when a checkout URL does not match the recognised shape."""

    status_code = 400
    error = "Bad Request"


class RequestValidationError(PipelineError):
    """Raised when a request body does not match its schema."""

    status_code = 400
    error = "Bad Request"


class AuthenticationError(PipelineError):
    """Raised when the request carries no valid credentials."""

    status_code = 401
    error = "Unauthorized"


class UserNotFoundError(PipelineError):
    """Raised when the requesting user does not exist in the user store."""


class CredentialUnavailableError(PipelineError):
    """Raised when a user's SCM credential cannot be unsealed."""


class ScmResolutionError(PipelineError):
    """Raised when the SCM provider cannot resolve a checkout URL or its permissions."""


class UnauthorizedError(PipelineError):
    """Raised when the user is not an admin of the repository."""

    status_code = 401
    error = "Unauthorized"

    def __init__(self, username: str, scm_uri: str):
        super().__init__(
            f"User {username} is not an admin of this repo",
            username=username,
            scmUri=scm_uri,
        )
        self.username = username
        self.scm_uri = scm_uri


class ConflictError(PipelineError):
    """Raised when a pipeline already exists for the repository."""

    status_code = 409
    error = "Conflict"

    def __init__(self, pipeline_id: int):
        super().__init__(
            f"Pipeline already exists: {pipeline_id}", pipelineId=pipeline_id
        )
        self.pipeline_id = pipeline_id


class CreationError(PipelineError):
    """Raised when the pipeline store fails to persist a new pipeline."""


class SyncError(PipelineError):
    """Raised when a freshly created pipeline cannot derive its jobs."""

    def __init__(self, pipeline_id: int, message: str):
        super().__init__(message, pipelineId=pipeline_id)
        self.pipeline_id = pipeline_id


class PipelineNotFoundError(PipelineError):
    """Raised when a pipeline id is unknown."""

    status_code = 404
    error = "Not Found"

    def __init__(self, pipeline_id: int):
        super().__init__(f"Pipeline {pipeline_id} does not exist")


class ScmProviderError(Exception):
    """Raised by SCM providers when the remote API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DuplicatePipelineError(Exception):
    """Raised by a pipeline store when the scm uri uniqueness constraint is violated."""

    def __init__(self, scm_uri: str, existing_id: int):
        super().__init__(f"Pipeline for {scm_uri} already exists: {existing_id}")
        self.scm_uri = scm_uri
        self.existing_id = existing_id
