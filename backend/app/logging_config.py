import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
HANDLER_NAME = "mapsmith-stdout"


def resolve_log_level(value: str | None) -> int:
    level = getattr(logging, (value or "INFO").strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: str | None = None) -> None:
    """Log to stdout at LOG_LEVEL (INFO when unset or unknown).

    Safe to call more than once; the stdout handler is only installed once.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_log_level(level or os.getenv("LOG_LEVEL")))
    if any(handler.get_name() == HANDLER_NAME for handler in root_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
