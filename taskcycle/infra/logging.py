from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from taskcycle.config import SETTINGS, PROJECT_ROOT

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str | None = None, log_to_file: bool = True) -> None:
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # stdout carries command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_to_file:
        log_dir = PROJECT_ROOT / SETTINGS.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "taskcycle.log", maxBytes=2_000_000, backupCount=3
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=(level or SETTINGS.log_level).upper(), handlers=handlers, force=True)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
