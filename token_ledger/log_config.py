"""
Logging setup.

Every module logs through logging.getLogger(__name__), so the whole
package hangs under the "token_ledger" logger. This configures that
tree once at application start.
"""

import logging.config

from token_ledger.config import get_settings


def configure_logging(level: str | None = None) -> None:
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "token_ledger": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    })
