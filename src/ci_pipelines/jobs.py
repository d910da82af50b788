import yaml
from sanic.log import logger

DEFAULT_JOB = "main"


def parse_job_names(config_text: str | None) -> list[str]:
    """
    Derive job names from a pipeline configuration file.

    Args:
        config_text: Raw YAML contents, or None when the repository has no
            configuration file

    Returns:
        Job names in file order; ``["main"]`` when there is no file

    Raises:
        ValueError: The file is not valid YAML or declares no jobs
    """
    if config_text is None:
        logger.debug("No pipeline configuration, using default job %s", DEFAULT_JOB)
        return [DEFAULT_JOB]

    try:
        payload = yaml.safe_load(config_text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid pipeline configuration: {e}") from e

    if not isinstance(payload, dict):
        raise ValueError("Pipeline configuration must be a mapping")

    jobs = payload.get("jobs")
    if not isinstance(jobs, dict) or not jobs:
        raise ValueError("Pipeline configuration declares no jobs")

    return [str(name) for name in jobs]
