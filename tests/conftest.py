import pytest
from sanic import Sanic
from sanic_testing import TestManager
from sanic.log import logger

from ci_pipelines.auth import make_token
from ci_pipelines.config import Config
from ci_pipelines.memory import MemoryPipelineStore, MemoryUserStore
from ci_pipelines.workflow import PipelineCreator
from tests.utils import FakeScm


@pytest.fixture
def config():
    config = Config(
        API_SECRET=b"abc",
        SCM_PROVIDER="github",
        SCM_API_URL="https://api.example.com",
        SCM_HOSTNAME="example.com",
        USERS={"alice": "alice-token", "bob": "bob-token"},
        PIPELINE_CONFIG_PATH="screwdriver.yaml",
        OVERRIDE_LOGGING="DEBUG",
        HEALTH_RATE_LIMIT=10,
    )

    logger.setLevel(config.OVERRIDE_LOGGING)

    return config


@pytest.fixture
def scm():
    # alice administers every repository, bob only reads
    return FakeScm(admin_tokens={"alice-token"})


@pytest.fixture
def user_store(config, scm):
    return MemoryUserStore(config.USERS, scm)


@pytest.fixture
def pipeline_store(config, user_store, scm):
    return MemoryPipelineStore(
        user_store, scm, config_path=config.PIPELINE_CONFIG_PATH
    )


@pytest.fixture
def creator(user_store, pipeline_store, scm):
    return PipelineCreator(user_store, pipeline_store, scm)


@pytest.fixture(scope="function")
def app(config, user_store, pipeline_store, scm) -> Sanic:
    """Create a Sanic app for testing."""
    from ci_pipelines.web import create_app

    app = create_app(
        config, user_store=user_store, pipeline_store=pipeline_store, scm=scm
    )
    TestManager(app)
    return app


@pytest.fixture
def auth_headers(config):
    def make(username="alice"):
        return {"Authorization": f"Bearer {make_token(username, config.API_SECRET)}"}

    return make
