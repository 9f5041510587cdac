from loguru import logger
import sys
import logging

from .settings import Settings


CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {message}"


class InterceptHandler(logging.Handler):
    """Intercept standard library logging and forward to loguru.

    This allows uvicorn, sqlalchemy and other libraries that use the logging
    module to be captured by loguru and use the same sinks/formatting.
    """

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def configure(settings: Settings):
    """Install the console and file sinks for the given settings.

    Called once by the application factory; calling it again replaces the
    previous sinks.
    """
    level = settings.log_level
    settings.LOG_DIR.mkdir(parents=True, exist_ok=True)

    # Remove default handlers to avoid duplicate logs
    logger.remove()

    # Console sink: human readable, colorized
    logger.add(sys.stdout, level=level, format=CONSOLE_FORMAT, colorize=True)

    # File sink: daily rotation, JSON serialized, asynchronous (enqueue)
    logger.add(
        str(settings.LOG_DIR / "uprelay-{time:YYYY-MM-DD}.log"),
        level=level,
        rotation="00:00",
        retention="14 days",
        serialize=True,
        enqueue=True,
        compression="zip",
    )

    # Intercept standard logging
    logging.root.handlers = [InterceptHandler()]
    for name in ("uvicorn.access", "uvicorn.error", "fastapi"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(logging.INFO)
    # statement logging at INFO is too chatty for the ingest path
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
