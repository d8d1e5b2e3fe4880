#!/usr/bin/env python3
"""
Credit Card Payment Plan Service Entry Point

Starts the FastAPI server with host, port and logging taken from the
CARDPLAN_* environment configuration.
"""

import sys

import uvicorn

from cardplan.config import get_config
from cardplan.logging_config import setup_logging


def run_server(host: str, port: int, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "cardplan.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    logger.info(f"Starting payment plan service on {config.api_host}:{config.api_port} "
                f"(storage: {config.database_url})")

    try:
        run_server(host=config.api_host, port=config.api_port, debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        logger.info("Shutting down payment plan service")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
