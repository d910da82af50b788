from sanic import Sanic, Request, response
import aiohttp
from sanic.log import logger
import cachetools
from aiolimiter import AsyncLimiter
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import ValidationError

from ci_pipelines import metrics
from ci_pipelines.auth import authenticate
from ci_pipelines.config import Config
from ci_pipelines.exceptions import (
    PipelineError,
    PipelineNotFoundError,
    RequestValidationError,
)
from ci_pipelines.memory import MemoryPipelineStore, MemoryUserStore
from ci_pipelines.models import CreatePipelineRequest, Stage
from ci_pipelines.scm import ScmProvider
from ci_pipelines.scm.github import GitHub
from ci_pipelines.scm.gitlab import GitLab
from ci_pipelines.stores import PipelineStore, UserStore
from ci_pipelines.workflow import PipelineCreator


def create_scm(
    config: Config, session: aiohttp.ClientSession, cache=None
) -> ScmProvider:
    if config.SCM_PROVIDER == "gitlab":
        return GitLab(session=session, config=config)
    return GitHub(session=session, config=config, cache=cache)


async def check_scm(session: aiohttp.ClientSession, url: str) -> bool:
    async with session.get(url) as resp:
        logger.debug("SCM API %s answered %d", url, resp.status)
        return resp.status < 500


def create_app(
    config: Config | None = None,
    *,
    user_store: UserStore | None = None,
    pipeline_store: PipelineStore | None = None,
    scm: ScmProvider | None = None,
):
    if config is None:
        config = Config()

    app = Sanic("ci-pipelines")
    app.update_config(config.model_dump())
    logger.setLevel(config.OVERRIDE_LOGGING)

    app.ctx.cache = cachetools.LRUCache(maxsize=500)
    app.ctx.aiohttp_session = None
    app.ctx.creator = None
    app.ctx.pipeline_store = pipeline_store

    if scm is not None and user_store is not None and pipeline_store is not None:
        app.ctx.creator = PipelineCreator(user_store, pipeline_store, scm)

    metrics.app_info.info({"scm_provider": config.SCM_PROVIDER})

    limiter = AsyncLimiter(config.HEALTH_RATE_LIMIT)

    @app.listener("before_server_start")
    async def init(app):
        if app.ctx.aiohttp_session is None:
            logger.debug("Creating aiohttp session")
            app.ctx.aiohttp_session = aiohttp.ClientSession()

        if app.ctx.creator is not None:
            return

        config.print_config()
        scm_provider = scm or create_scm(
            config, app.ctx.aiohttp_session, cache=app.ctx.cache
        )
        users = user_store or MemoryUserStore(config.USERS, scm_provider)
        pipelines = pipeline_store or MemoryPipelineStore(
            users, scm_provider, config_path=config.PIPELINE_CONFIG_PATH
        )
        app.ctx.pipeline_store = pipelines
        app.ctx.creator = PipelineCreator(users, pipelines, scm_provider)
        logger.info("Using %s SCM provider", scm_provider.name)

    @app.listener("after_server_stop")
    async def close(app):
        if app.ctx.aiohttp_session is not None:
            logger.debug("Closing aiohttp session")
            await app.ctx.aiohttp_session.close()
            app.ctx.aiohttp_session = None

    @app.exception(PipelineError)
    def on_pipeline_error(request, exception: PipelineError):
        return response.json(exception.to_payload(), status=exception.status_code)

    @app.route("/")
    async def index(request):
        logger.debug("status check")
        return response.text("ok")

    @app.route("/health")
    async def health(request):
        if not limiter.has_capacity():
            return response.text("Rate limited", status=429)
        await limiter.acquire()

        logger.info("Checking health")
        try:
            scm_ok = await check_scm(app.ctx.aiohttp_session, config.SCM_API_URL)
        except Exception as e:
            logger.error("SCM API check failed: %s", e)
            logger.exception(e)
            scm_ok = False

        metrics.health_check_status.labels("scm").set(1 if scm_ok else 0)
        metrics.health_check_status.labels("overall").set(1 if scm_ok else 0)

        status = 200 if scm_ok else 500
        scm_str = "ok" if scm_ok else "not ok"
        return response.text(f"SCM: {scm_str}", status=status)

    @app.route("/metrics")
    async def prometheus(request):
        return response.raw(generate_latest(), content_type=CONTENT_TYPE_LATEST)

    @app.post("/pipelines")
    async def create_pipeline(request: Request):
        username = authenticate(request, config.API_SECRET)

        try:
            payload = CreatePipelineRequest.model_validate(request.json or {})
        except ValidationError as e:
            raise RequestValidationError(
                "Invalid request payload",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        logger.debug("User %s creates pipeline for %s", username, payload.checkout_url)

        with metrics.pipeline_create_duration_seconds.time():
            try:
                pipeline = await app.ctx.creator.create(payload.checkout_url, username)
            except PipelineError as e:
                metrics.pipeline_create_requests_total.labels(type(e).__name__).inc()
                raise

        metrics.pipeline_create_requests_total.labels("created").inc()

        location = f"{request.scheme}://{request.host}{request.path}/{pipeline.id}"
        logger.debug("Pipeline %d %s", pipeline.id, Stage.responded.value)
        return response.json(
            pipeline.to_json(), status=201, headers={"Location": location}
        )

    @app.get("/pipelines/<pipeline_id:int>")
    async def get_pipeline(request: Request, pipeline_id: int):
        authenticate(request, config.API_SECRET)

        pipeline = await app.ctx.pipeline_store.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(pipeline_id)
        return response.json(pipeline.to_json())

    return app
