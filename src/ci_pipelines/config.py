from typing import Literal

from pydantic_settings import BaseSettings
from sanic.log import logger


class Config(BaseSettings):
    API_SECRET: bytes

    SCM_PROVIDER: Literal["github", "gitlab"] = "github"
    SCM_API_URL: str = "https://api.github.com"
    SCM_HOSTNAME: str = "github.com"

    # username -> SCM access token, used by the in-memory user store
    USERS: dict[str, str] = {}

    PIPELINE_CONFIG_PATH: str = "screwdriver.yaml"

    OVERRIDE_LOGGING: Literal[
        "CRITICAL",
        "FATAL",
        "ERROR",
        "WARNING",
        "WARN",
        "INFO",
        "DEBUG",
        "NOTSET",
    ] = "INFO"

    HEALTH_RATE_LIMIT: int = 10

    def print_config(self):
        """Print configuration values with sensitive attributes masked"""
        sensitive_attrs = {
            "API_SECRET",
            "USERS",
        }

        logger.info("=== CI Pipelines Configuration ===")
        for field_name, field_value in self.model_dump().items():
            if field_name in sensitive_attrs:
                if isinstance(field_value, bytes):
                    logger.info(f"{field_name}: *** (bytes)")
                elif isinstance(field_value, dict):
                    logger.info(f"{field_name}: *** ({len(field_value)} entries)")
                else:
                    logger.info(f"{field_name}: ***")
            else:
                logger.info(f"{field_name}: {field_value}")
        logger.info("==================================")
