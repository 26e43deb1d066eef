"""
Main entrypoint: Coursebook API gateway served by uvicorn.

Env: RABBITMQ_HOST, JWT_SECRET, MONGO_HOST, RIAK_HOST, API_HOST, API_PORT,
COMPLETION_QUEUE (optional reply queue), LOG_LEVEL, LOG_FORMAT, etc.

App only: uvicorn coursebook_gateway.api_server.app:app --host 0.0.0.0 --port 8080
"""

import os
import sys

# Configure structured JSON logging before other imports that may log
from coursebook_gateway.gateway_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Load settings, build the app and serve it in the main thread."""
    from coursebook_gateway.api_server.server import create_app
    from coursebook_gateway.config import get_settings
    from coursebook_gateway.core.exceptions import ConfigError

    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("main_config_error", message=e.message)
        sys.exit(1)

    app = create_app(settings)
    import uvicorn

    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        rabbitmq=settings.rabbitmq_url.split("@")[-1],
    )
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
