import logging
import os
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure root logging once.
    If fmt is not provided, a sensible default is used. When log_file is given,
    records are written to that file as well as to stderr. Later calls only
    adjust the level and attach a log file that is not attached yet.
    """
    root = logging.getLogger()
    format_str = fmt or DEFAULT_FORMAT
    if not root.handlers:
        logging.basicConfig(level=level, format=format_str)
    elif level != logging.INFO:
        root.setLevel(level)

    if log_file and not any(
        isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file) for h in root.handlers
    ):
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format_str))
        root.addHandler(file_handler)


def parse_log_level(value: Optional[str], default: int = logging.INFO) -> int:
    """Map a level name such as 'debug' or 'WARNING' to its logging constant."""
    if not value:
        return default
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else default


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module/logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Centralized exception logging with full traceback.

    Args:
        logger: Logger instance to use
        message: Custom error message to log before the traceback
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"Exception type: {type(exc_info).__name__}")
        logger.error(f"Exception message: {str(exc_info)}")
        tb = "".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__))
    else:
        tb = traceback.format_exc()
    logger.error("Full traceback:")
    logger.error(tb)
