import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "uplite"


def setup_logger(logs_dir: Optional[Union[str, Path]] = None):
    logger = logging.getLogger(LOGGER_NAME)
    # Already configured by an earlier call
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # File handler (for detailed logging)
    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / "uplite.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger of the application logger, e.g. ``uplite.upload``."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
