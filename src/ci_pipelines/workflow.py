from sanic.log import logger

from ci_pipelines import metrics
from ci_pipelines.checkout import format_checkout_url
from ci_pipelines.exceptions import (
    ConflictError,
    CreationError,
    CredentialUnavailableError,
    DuplicatePipelineError,
    PipelineError,
    ScmResolutionError,
    SyncError,
    UnauthorizedError,
    UserNotFoundError,
)
from ci_pipelines.models import PipelineConfig, Stage
from ci_pipelines.scm import ScmProvider
from ci_pipelines.stores import Pipeline, PipelineStore, User, UserStore


class PipelineCreator:
    """
    Creates a pipeline for a checkout url on behalf of a user.

    Stages run strictly in order and the first failure aborts the rest:
    normalize the url, resolve the user and their credential, resolve the scm
    uri, check admin permission, check no pipeline exists, create, sync.
    Nothing is retried and nothing is rolled back.
    """

    def __init__(
        self, user_store: UserStore, pipeline_store: PipelineStore, scm: ScmProvider
    ):
        self.user_store = user_store
        self.pipeline_store = pipeline_store
        self.scm = scm

    async def create(self, checkout_url: str, username: str) -> Pipeline:
        stage = Stage.received
        try:
            with metrics.track_stage("normalize"):
                checkout_url = format_checkout_url(checkout_url)
            stage = Stage.normalized
            logger.debug("Normalized checkout url: %s", checkout_url)

            user = await self.resolve_user(username)
            stage = Stage.user_resolved

            token = await self.unseal_token(user)
            stage = Stage.credential_unsealed

            scm_uri = await self.resolve_scm_uri(checkout_url, token)
            stage = Stage.scm_resolved

            await self.authorize(user, scm_uri)
            stage = Stage.authorized

            await self.ensure_unique(scm_uri)
            stage = Stage.uniqueness_checked

            pipeline = await self.create_pipeline(scm_uri, username)
            stage = Stage.created

            await self.sync(pipeline)
            stage = Stage.synced
        except PipelineError as e:
            e.stage = stage.value
            logger.info(
                "Pipeline creation for %s by %s failed after %s: %s",
                checkout_url,
                username,
                stage.value,
                e,
            )
            raise

        logger.info("Created pipeline %d for %s", pipeline.id, pipeline.scm_uri)
        return pipeline

    async def resolve_user(self, username: str) -> User:
        with metrics.track_stage("resolve_user"):
            try:
                user = await self.user_store.get(username)
            except Exception as e:
                raise PipelineError(
                    f"Could not look up user {username}: {e}", username=username
                ) from e
            if user is None:
                raise UserNotFoundError(
                    f"User {username} does not exist", username=username
                )
            return user

    async def unseal_token(self, user: User) -> str:
        with metrics.track_stage("unseal_token"):
            try:
                token = await user.unseal_token()
            except Exception as e:
                raise CredentialUnavailableError(
                    f"Could not unseal token for user {user.username}",
                    username=user.username,
                ) from e
            if not token:
                raise CredentialUnavailableError(
                    f"User {user.username} has no usable token",
                    username=user.username,
                )
            return token

    async def resolve_scm_uri(self, checkout_url: str, token: str) -> str:
        with metrics.track_stage("resolve_scm_uri"):
            try:
                scm_uri = await self.scm.parse_url(checkout_url, token)
            except PipelineError:
                raise
            except Exception as e:
                raise ScmResolutionError(
                    f"Could not resolve {checkout_url}: {e}", checkoutUrl=checkout_url
                ) from e
            logger.debug("Resolved %s to %s", checkout_url, scm_uri)
            return scm_uri

    async def authorize(self, user: User, scm_uri: str) -> None:
        with metrics.track_stage("authorize"):
            try:
                permissions = await user.get_permissions(scm_uri)
            except PipelineError:
                raise
            except Exception as e:
                raise ScmResolutionError(
                    f"Could not fetch permissions of {user.username} on {scm_uri}: {e}",
                    scmUri=scm_uri,
                ) from e

            logger.debug("Permissions of %s on %s: %s", user.username, scm_uri, permissions)
            if not permissions.admin:
                raise UnauthorizedError(user.username, scm_uri)

    async def ensure_unique(self, scm_uri: str) -> None:
        with metrics.track_stage("ensure_unique"):
            try:
                existing = await self.pipeline_store.get_by_scm_uri(scm_uri)
            except Exception as e:
                raise CreationError(
                    f"Could not look up pipelines for {scm_uri}: {e}", scmUri=scm_uri
                ) from e
            if existing is not None:
                raise ConflictError(existing.id)

    async def create_pipeline(self, scm_uri: str, username: str) -> Pipeline:
        config = PipelineConfig.for_creator(scm_uri, username)
        with metrics.track_stage("create"):
            try:
                return await self.pipeline_store.create(config)
            except DuplicatePipelineError as e:
                # lost the race against a concurrent request
                logger.info("Pipeline for %s was created concurrently", scm_uri)
                raise ConflictError(e.existing_id) from e
            except Exception as e:
                raise CreationError(
                    f"Could not create pipeline for {scm_uri}: {e}", scmUri=scm_uri
                ) from e

    async def sync(self, pipeline: Pipeline) -> None:
        with metrics.track_stage("sync"):
            try:
                await pipeline.sync()
            except Exception as e:
                logger.error(
                    "Pipeline %d was created but failed to sync: %s", pipeline.id, e
                )
                raise SyncError(
                    pipeline.id, f"Failed to sync pipeline {pipeline.id}: {e}"
                ) from e
