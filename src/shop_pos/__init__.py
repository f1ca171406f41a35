"""Sale transaction and analytics engine backed by an Excel workbook.

Every module logs through :data:`log`. Import installs a console handler and
the default log file; :func:`configure_logging` re-installs both once the
``[Logging]`` section of ``config.ini`` has been read.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


LOGGER_NAME = "shop_pos"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = Path(__file__).resolve().parents[2] / ".logs" / "shop_pos.log"

log = logging.getLogger(LOGGER_NAME)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = DEFAULT_LOG_FILE,
) -> logging.Logger:
    """Replace the package handlers with a console and an optional log file.

    Args:
        level: Threshold applied to the logger and both handlers.
        log_file: Rotating log destination; ``None`` logs to stderr only.

    Returns:
        logging.Logger: The package logger.
    """
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    log.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    log.addHandler(console_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        except OSError as exc:
            log.warning("File logging disabled, cannot open '%s': %s", log_file, exc)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            log.addHandler(file_handler)

    return log


configure_logging()
