"""Root logger configuration for the command line."""

from __future__ import annotations

import logging
import logging.config
import os

LOG_LEVEL_ENV = "NOTEWEAVE_LOG_LEVEL"


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through a Rich console handler.

    ``verbose`` (or ``NOTEWEAVE_LOG_LEVEL=debug``) lowers the level to DEBUG.
    """

    debug_mode = verbose or os.getenv(LOG_LEVEL_ENV, "info").lower() == "debug"
    loglevel = logging.DEBUG if debug_mode else logging.INFO
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "rich": {"format": "%(message)s", "datefmt": "[%X]"},
            },
            "handlers": {
                "console": {
                    "class": "rich.logging.RichHandler",
                    "formatter": "rich",
                    "level": loglevel,
                    "show_path": False,
                    "markup": False,
                },
            },
            "root": {"handlers": ["console"], "level": loglevel},
        }
    )
    # request logs from the OpenAI client are noise unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
    logging.getLogger("openai").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
