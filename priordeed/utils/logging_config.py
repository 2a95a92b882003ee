import sys
from pathlib import Path

from loguru import logger

from priordeed.utils.logging_utils import add_optional_sinks, env_log_level

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[run_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[run_id]} | {name}:{function}:{line} - {message} {extra}"


def configure_logger(log_file: str = "priordeed.log", level: str | None = None, log_dir: str = "logs"):
    """
    Configure loguru for the CLI and the web API.

    Every sink prints the bound run id; records logged outside a run show "-".
    """
    level = level or env_log_level()
    Path(log_dir).mkdir(exist_ok=True)

    # Remove default handler to avoid duplicate logs
    logger.remove()
    logger.configure(extra={"run_id": "-"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)
    logger.add(
        Path(log_dir) / log_file,
        rotation="10 MB",
        retention="10 days",
        level=level,
        format=FILE_FORMAT,
        backtrace=True,
        diagnose=True,
    )
    add_optional_sinks(log_dir)


_configured = False


def setup_default_logging():
    global _configured
    if not _configured:
        configure_logger()
        _configured = True
