# run_server.py

import uvicorn

from breakwatch.utils.logging import setup_logging
from breakwatch.config import settings

logger = setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)


def main():
    logger.info(
        f"Booting {settings.PROJECT_NAME} v{settings.VERSION} | Env={settings.ENVIRONMENT.value} "
        f"| Store={settings.STORE_BACKEND.value}"
    )
    # Caches are per-process; one worker keeps the upstream load predictable
    uvicorn.run(
        "breakwatch.main:app",
        host="0.0.0.0",
        port=8000,
        workers=1,
        log_config=None,
    )


if __name__ == "__main__":
    main()
