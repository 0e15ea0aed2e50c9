"""Logging setup for minik3s."""

import logging

from minik3s.core.logging.formatter import Minik3sLogFormatter
from minik3s.core.logging.handler import Minik3sLoggerHandler
from minik3s.core.logging.levels import LogLevel
from minik3s.core.logging.logger import Minik3sLogger
from minik3s.core.logging.spinner import Spinner

LOGGER_NAME = "minik3s"
NOISY_LOGGERS = ["urllib3", "docker"]


def configure_logging(log_level: LogLevel = LogLevel.INFO) -> Minik3sLogger:
    """
    Create the singleton minik3s logger or return the existing one.

    The handler is attached to the root logger so records from any
    `minik3s.*` module logger are formatted the same way.

    Parameters
    ----------
    log_level : LogLevel
        Minimum log level to emit.

    Returns
    -------
    Minik3sLogger
        The configured logger.
    """
    logging.setLoggerClass(Minik3sLogger)
    logger = logging.getLogger(LOGGER_NAME)
    logging.setLoggerClass(logging.Logger)
    if not isinstance(logger, Minik3sLogger):
        raise TypeError(
            f"Logger '{LOGGER_NAME}' was created before logging was configured."
        )

    root_logger = logging.getLogger()
    if not any(isinstance(h, Minik3sLoggerHandler) for h in root_logger.handlers):
        verbose = log_level == LogLevel.DEBUG
        logger._spinner = Spinner(always_verbose=verbose)
        logger._formatter = Minik3sLogFormatter(always_verbose=verbose)
        handler = Minik3sLoggerHandler(logger._spinner)
        handler.setFormatter(logger._formatter)
        root_logger.handlers.clear()
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.NOTSET)
        logger.propagate = True
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.set_level(log_level)
    return logger
