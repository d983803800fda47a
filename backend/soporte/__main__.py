"""
Entry point: `python -m soporte`.

Runs the API under uvicorn on HOST:PORT. A failed startup (missing table,
unreachable database) or any uncaught exception exits with status 1.
"""

import logging
import sys

import uvicorn

from soporte.config import settings

logger = logging.getLogger("soporte")


def main() -> int:
    try:
        config = uvicorn.Config(
            "soporte.main:app",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            lifespan="on",
        )
        server = uvicorn.Server(config)
        server.run()
    except Exception:
        logger.critical("Uncaught exception, shutting down", exc_info=True)
        return 1

    # uvicorn swallows lifespan startup failures and just stops
    if not server.started:
        logger.critical("Server did not start; see the errors above")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
