# src/services/log.py
"""
Shared logging setup.

Every module does:
    from services.log import get_logger
    logger = get_logger(__name__)

The root logger is configured once (stdout, optional rotating file).
Env:
  LOG_LEVEL=DEBUG|INFO|WARNING|ERROR
  LOG_FILE=logs/portfolio   (writes logs/portfolio.log)
"""

import logging
import logging.handlers
import os
import sys

_FMT = "%(asctime)s [%(levelname)-5s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# marks our handlers so Streamlit reruns don't stack duplicates
_APP_HANDLER_MARKER = "_is_portfolio_log_handler"


def _setup_app_logging() -> None:
    root = logging.getLogger()
    if any(getattr(h, _APP_HANDLER_MARKER, False) for h in root.handlers):
        return

    level = _LEVEL_MAP.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root.setLevel(level)

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(logging.Formatter(_FMT, datefmt=_DATE_FMT))
    ch.setLevel(level)
    setattr(ch, _APP_HANDLER_MARKER, True)
    root.addHandler(ch)

    log_file = os.getenv("LOG_FILE", "")
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            f"{log_file}.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=7,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_FMT, datefmt=_DATE_FMT))
        setattr(fh, _APP_HANDLER_MARKER, True)
        root.addHandler(fh)


_setup_app_logging()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
