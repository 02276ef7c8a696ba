#!/usr/bin/env python3
"""
Pyggpot Entry Point

Starts the FastAPI server with the pot ledger.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from pyggpot.api import run_server
from pyggpot.config import get_config
from pyggpot.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, fmt=config.log_format)
    logger.info(f"Starting Pyggpot on {config.api_host}:{config.api_port} "
                f"(database {config.database_url})")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Pyggpot")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
