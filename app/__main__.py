"""Process entry point: ``python -m app`` or the ``prism`` console script."""

import sys

import structlog
import uvicorn
from pydantic import ValidationError

from app.config import ConfigError, Settings
from app.logging_config import configure_logging


def uvicorn_options(settings: Settings) -> dict:
    """Build the keyword arguments passed to ``uvicorn.run``."""
    options: dict = {
        "host": settings.server.host,
        "port": settings.server.port,
        "log_config": None,
        # Access lines would print the webhook_token query parameter.
        "access_log": False,
    }
    if settings.server.tls.enabled:
        options["ssl_certfile"] = settings.server.tls.certificate
        options["ssl_keyfile"] = settings.server.tls.private_key
    return options


def main() -> int:
    configure_logging()
    logger = structlog.get_logger()

    try:
        settings = Settings()
        settings.require_complete()
    except (ConfigError, ValidationError) as exc:
        logger.error("config_invalid", error=str(exc))
        return 1

    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    options = uvicorn_options(settings)
    logger.info(
        "server_starting",
        port=settings.server.port,
        tls=settings.server.tls.enabled,
    )
    uvicorn.run("app.main:app", **options)
    return 0


if __name__ == "__main__":
    sys.exit(main())
