"""进程入口：``python -m gateway_core``。"""

import sys

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from gateway_core.api.app import create_app  # noqa: E402
from gateway_core.config.settings import settings  # noqa: E402
from gateway_core.domain.exceptions import RouteLoadError  # noqa: E402
from gateway_core.infrastructure.logging.logger import logger  # noqa: E402


def main() -> int:
    try:
        app = create_app(settings)
    except RouteLoadError as exc:
        logger.critical(
            "Fatal startup error",
            extra={"extra": {"unit": exc.unit, "reason": exc.reason}},
        )
        return 1
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
