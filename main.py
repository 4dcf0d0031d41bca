"""
Course Gate Bot entry point.

Runs the admin API with uvicorn; the bot connection starts and stops with
the API lifespan.
"""

import logging

import uvicorn

import config
from secrets_manager import install_log_filter

logger = logging.getLogger("main")


def main() -> None:
    config.setup_logging()
    install_log_filter()
    config.validate_config()

    logger.info(f"🚀 Starting server on {config.API_HOST}:{config.PORT} ({config.ENVIRONMENT})")
    uvicorn.run(
        "api_server:create_app",
        factory=True,
        host=config.API_HOST,
        port=config.PORT,
        reload=False,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
