"""HTTP application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from . import __version__
from .core.config import settings
from .core.config_validation import run_config_checks
from .api.routes import router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def log_config_issues() -> bool:
    """Run configuration checks and log the findings; return True on errors."""

    config_result = run_config_checks()

    for issue in config_result.errors:
        logger.error("Configuration error: %s", issue.message)
        if issue.hint:
            logger.error("Hint: %s", issue.hint)

    for issue in config_result.warnings:
        logger.warning("Configuration warning: %s", issue.message)
        if issue.hint:
            logger.warning("Hint: %s", issue.hint)

    return config_result.has_errors


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting %s", settings.app_name)
    logger.info("Version: %s", __version__)
    logger.info("Debug mode: %s", settings.debug)

    if log_config_issues():
        logger.error("Pool actions may fail until the configuration errors are fixed")

    yield

    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
)
app.include_router(router)


def run() -> None:
    """Console entry point for the HTTP server."""

    uvicorn.run(
        "iispool.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
