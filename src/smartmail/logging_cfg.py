# =============================================================================
# Logging Configuration
# =============================================================================
# Sets up a rotating log file in the XDG state directory plus console output.
#
# Modules never configure logging themselves; they only do
#     logger = logging.getLogger(__name__)
# and the CLI calls setup_logging() once at startup.
# =============================================================================

import logging
import logging.handlers
from pathlib import Path

# Maximum log file size (5 MB)
MAX_LOG_SIZE = 5 * 1024 * 1024

# Number of rotated log files to keep
BACKUP_COUNT = 3

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = ("aioimaplib", "aiosqlite", "asyncio")


def setup_logging(debug: bool = False, log_file: Path | None = None) -> None:
    """
    Configure the root logger.

    Args:
        debug: Log DEBUG to file and console. Otherwise INFO to file and
               WARNING to console.
        log_file: Rotating log file. Omitted for console-only logging.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(fmt="%(levelname)s - %(message)s"))
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
