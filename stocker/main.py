"""
Main application entry point.
Configures logging, builds the FastAPI app and serves it with uvicorn.
"""
import logging
import sys

import uvicorn

from stocker.api import create_app
from stocker.config import settings

# Configure logging for stdout/stderr collectors
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)

logger = logging.getLogger(__name__)

app = create_app(settings)


def main():
    """Run the application."""
    logger.info(
        "Configuration loaded",
        extra={
            "host": settings.host,
            "port": settings.port,
            "log_level": settings.log_level,
            "api_key_header": settings.api_key_header,
            "api_key_count": len(settings.valid_api_keys),
            "db_pool_size": settings.db_pool_size,
            "db_max_overflow": settings.db_max_overflow,
            "db_pool_timeout_seconds": settings.db_pool_timeout_seconds,
        },
    )

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        lifespan="on",
        access_log=True,
    )


if __name__ == "__main__":
    main()
