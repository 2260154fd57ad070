import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..config.config import settings


def setup_logging(log_dir: str = None, level: str = None):
    """
    Configures the process-wide logging setup.

    Logs go both to stdout (for development and container logs) and to a
    rotating file that rolls over once it reaches 5 MB, keeping five old files.
    """
    log_format = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"

    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    # Drop handlers installed by uvicorn and friends so a single format wins.
    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(stdout_handler)

    file_handler = RotatingFileHandler(
        directory / "app.log",
        maxBytes=5*1024*1024,  # 5 MB
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(file_handler)
