"""Run the bridge under uvicorn: ``python -m notion_bridge`` or ``notion-bridge``."""

import logging
import sys

import uvicorn

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )


def main():
    settings = get_settings()
    configure_logging(settings)

    logger.info(
        "Starting Notion bridge on %s:%s (persistence=%s, upstream=%s)",
        settings.app_host,
        settings.app_port,
        settings.persistence_backend,
        settings.notion_api_url,
    )

    # Reload needs an import string; the app is built from settings at import time
    uvicorn.run(
        "notion_bridge.api.app:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
