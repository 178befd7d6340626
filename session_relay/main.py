"""
Session Relay - main application entry point.

Exposes the ASGI app for uvicorn ("session_relay.main:app") and the
session-relay console command.
"""

import sys

import uvicorn

from .app.factory import create_app
from .config import get_config
from .structured_logging.logging_config import configure_logging, get_logger

# Logging must be configured before the app and its loggers are created
config = get_config()
configure_logging(config)

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app = create_app(config)


def main() -> None:
    """Start the session relay with uvicorn."""
    host = config.server.host
    port = config.server.port
    logger.info("Starting session relay server", host=host, port=port)

    try:
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                log_level=config.logging.level.lower(),
                access_log=True,
            )
        )
        server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
