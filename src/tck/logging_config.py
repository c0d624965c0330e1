import logging
import logging.config
import os
import sys

DEFAULT_LEVEL = "INFO"


def build_logging_config(level: str | None = None, log_file: str | None = None) -> dict:
    """Console logging, plus a file when ``log_file`` (or TCK_LOG_FILE) is set.

    Unset arguments are read from the environment at call time.
    """
    level = (level or os.getenv("LOG_LEVEL") or DEFAULT_LEVEL).upper()
    log_file = log_file or os.getenv("TCK_LOG_FILE")
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "tck": {
                "level": level,
                "handlers": handlers,
                "propagate": False,  # Don't pass 'tck' logs up to the root logger
            },
            # Shut the log levels for libraries up
            "httpx": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
            "httpcore": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
        },
        # Default for all other loggers
        "root": {
            "level": "WARNING",
            "handlers": handlers,
        },
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
        handlers.append("file")
    return config


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(build_logging_config(level, log_file))
