from __future__ import annotations

import logging
from logging.config import dictConfig

from weatherstation.settings import get_settings

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends the station's ``extra=`` fields as ``key=value`` pairs."""

    context_keys = (
        "path",
        "code",
        "observer_id",
        "observer_count",
        "discarded",
        "registry",
        "serial_port",
    )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{key}={record.__dict__[key]}"
            for key in self.context_keys
            if record.__dict__.get(key) is not None
        )
        return f"{line} | {context}" if context else line


def configure_logging(level: str | int | None = None) -> None:
    """Send everything to stderr at ``level`` (settings when omitted); only the first call counts."""
    global _configured
    if _configured:
        return

    if level is None:
        level = get_settings().log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "station": {
                    "()": ContextualFormatter,
                    "fmt": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "station",
                    "stream": "ext://sys.stderr",
                }
            },
            # aiocoap is chatty at INFO
            "loggers": {"coap": {"level": "WARNING"}, "coap-server": {"level": "WARNING"}},
            "root": {"handlers": ["stderr"], "level": level},
        }
    )
    _configured = True
