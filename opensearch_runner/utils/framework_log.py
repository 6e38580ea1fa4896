import logging
import pathlib as pl
import time

FRAMEWORK_LOG = "runner.log"


class UTCFormatter(logging.Formatter):
    converter = time.gmtime  # type: ignore[assignment]


def get_framework_log_path(base_path: pl.Path) -> pl.Path:
    return base_path / FRAMEWORK_LOG


def framework_logger(base_path: pl.Path) -> logging.Logger:
    """Get logger for the `runner.log` file of a cluster.

    The logger is configured per cluster base path. It is used for logging (and later reporting)
    lifecycle events like a failure to start a node.
    """
    log_path = get_framework_log_path(base_path)
    logger = logging.getLogger(f"framework.{base_path.name}")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(log_path):
            return logger

    formatter = UTCFormatter("%(asctime)s %(levelname)s %(message)s")
    handler = logging.FileHandler(log_path)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def close_framework_logger(logger: logging.Logger) -> None:
    """Close all file handlers of the logger, so the log file can be deleted."""
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.close()
            logger.removeHandler(handler)
