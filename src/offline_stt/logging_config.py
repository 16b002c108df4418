"""
Centralized logging configuration.

Configures loguru with a single stderr sink. Library modules only call
``logger``; the application decides where records go.
"""
import sys

from loguru import logger

FORMATS = {
    "simple": "<level>{level: <8}</level> | <level>{message}</level>",
    "detailed": (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    ),
    "json": "{message}",
}


def configure_logging(log_level: str = "INFO", format_type: str = "detailed") -> None:
    """
    Configure loguru logging for the service.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Format style ("simple", "detailed", "json")
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=FORMATS.get(format_type, FORMATS["detailed"]),
        level=log_level,
        colorize=format_type != "json",
        serialize=format_type == "json",
        backtrace=True,
        diagnose=False,
    )

    logger.info(f"Logging configured: level={log_level}, format={format_type}")
