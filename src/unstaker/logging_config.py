import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")

FORMAT = "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s"


def logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": FORMAT,
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
            "unstaker": {
                "level": level,
                "handlers": handlers,
                "propagate": False, # Don't pass 'unstaker' logs up to the root logger
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


def setup_logging(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(logging_config(level, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
