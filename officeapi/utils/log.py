import sys

from loguru import logger

from .constants import Server, _Server


def setup_logging(settings: _Server = Server) -> None:
    """
    Configure loguru for the running environment.

    Development gets colourised debug output, production gets JSON lines so the
    hosting platform can index them. `LOG_FILE` adds a rotating JSON file.

    Args:
        settings: Server settings deciding level, format and file output.
    """
    logger.remove()

    if settings.is_development or settings.DEBUG:
        logger.add(
            sys.stderr,
            level="DEBUG",
            colorize=True,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>",
        )
    else:
        logger.add(sys.stderr, level="INFO", serialize=True)

    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            level="INFO",
            serialize=True,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )
