from __future__ import annotations

from logging.config import dictConfig


def configure_logging(level: str = "INFO") -> None:
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "level": level,
                }
            },
            "root": {"handlers": ["console"], "level": level},
            "loggers": {
                # Child loggers propagate to root; no extra handlers to avoid duplicate lines
                "services": {"level": level, "propagate": True},
                "api": {"level": level, "propagate": True},
                "uvicorn.access": {"level": "WARNING", "propagate": True},
            },
        }
    )
