"""Logging configuration for the vastkmm package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        # Create console handler
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        # Create formatter
        formatter = logging.Formatter(FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
        handler.setFormatter(formatter)

        # Add handler to logger
        logger.addHandler(handler)

    return logger

def add_file_handler(
    path: str,
    max_size_mb: int = 100,
    backup_count: int = 5,
    logger_name: str = "vastkmm",
) -> Optional[Path]:
    """Also log to a rotating file."""
    log_file = Path(path).expanduser().absolute()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count
    )
    file_handler.setFormatter(logging.Formatter(FORMAT))
    logging.getLogger(logger_name).addHandler(file_handler)
    return log_file
