"""API service entry point.

Provides the application instance for ASGI servers (uvicorn) and a run()
function for direct execution.
"""

import logging

from autologistics.api import create_app

logger = logging.getLogger(__name__)

# This is what uvicorn references: autologistics.api.main:app
app = create_app()


def run() -> None:
    """Run the API server using uvicorn.

    Called by the ``autologistics-api`` console script.
    """
    import uvicorn

    from autologistics.core.settings import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting Auto Logistics API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "autologistics.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
