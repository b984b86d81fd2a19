import os
import sys

from loguru import logger


def setup_logger(*, json_logs: bool = False, level: str = "INFO") -> None:
    """Configure loguru for the sentinel process.

    Console level controlled by LOG_LEVEL env (default: ``level``).
    The daily file sink always captures DEBUG so a rejected token can be
    traced through discovery, gate and monitor after the fact.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        "logs/sentinel_{time:YYYY-MM-DD}.log",
        rotation="50 MB",
        retention="3 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
        enqueue=True,
    )


def short(address: str | None) -> str:
    """Shorten an address for hot-loop log lines (0x1234..abcd)."""
    if not address:
        return "?"
    if len(address) <= 12:
        return address
    return f"{address[:6]}..{address[-4:]}"
