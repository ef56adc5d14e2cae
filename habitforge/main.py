"""Main entry point for the HabitForge API server"""
import logging

import uvicorn

from habitforge.api.server import create_api_application
from habitforge.config import API_HOST, API_PORT, LOG_LEVEL

logger = logging.getLogger(__name__)

app = create_api_application()


def main() -> None:
    """Run the API with uvicorn"""
    logger.info(f"Starting HabitForge API on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
