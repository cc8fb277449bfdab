# clypse/main.py

import uvicorn

import clypse.config as config
from clypse.observability.logger import configure_logging
from clypse.utils.logger import log_info


def main() -> None:
    """Entry point for the `clypse` console script."""
    # Configure structured JSON logging as early as possible
    configure_logging(config)

    log_info(f"Server starting at http://{config.HOST}:{config.PORT} (store={config.STORE_BACKEND})")
    uvicorn.run(
        "clypse.main_fastapi:app",
        host=config.HOST,
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
