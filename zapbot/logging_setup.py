"""loguru sink configuration for the bot process."""

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = ("aiohttp", "httpx", "httpcore", "asyncio")


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace loguru's default sink with a stderr sink (and optional file sink)."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level=level.upper(), rotation="10 MB", retention=5, encoding="utf-8")

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
