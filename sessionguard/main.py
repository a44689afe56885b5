"""Main application entry point for the FastAPI application.

This module serves as the central entry point for the application.
It initializes the application and creates the FastAPI instance using
the application factory pattern.
"""

import uvicorn

from sessionguard.core.application import create_application
from sessionguard.core.config.settings import settings
from sessionguard.core.initialization import initialize_application

# Initialize the application
initialize_application()

# Create the FastAPI application
app = create_application()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    uvicorn.run(
        "sessionguard.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
