import logging
import logging.config
import os
import sys
import typing as t

from .config import LOG_FILE, LOG_LEVEL


def _build_config(level: str, log_file: t.Optional[str]) -> dict:
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
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
            "txflood": {
                "level": level,
                "handlers": handlers,
                "propagate": False,
            },
            # Keep the libraries quiet
            "web3": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
            "urllib3": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
        },
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


def setup_logging(level: t.Optional[str] = None, log_file: t.Optional[str] = None) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(_build_config((level or LOG_LEVEL).upper(), log_file or LOG_FILE))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")


def log_error_summary(logger: logging.Logger, header: str, errors: t.Sequence[t.Any], limit: int = 20) -> None:
    """
    Emit accumulated recoverable errors as one warning followed by one error line each.
    """
    if not errors:
        return
    logger.warning("%s (%d)", header, len(errors))
    for err in errors[:limit]:
        logger.error("  %s", err)
    if len(errors) > limit:
        logger.error("  ... and %d more", len(errors) - limit)
