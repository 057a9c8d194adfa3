"""Process logging for the SalesPro backend.

Everything goes to one stream handler. The diagnostic ring, the telemetry
fan-out and the SQLAlchemy engine each get their own logger level so a
deploy can quieten ``TELEMETRY`` lines or turn on SQL echo without touching
the root level.
"""

from __future__ import annotations

import os
from logging.config import dictConfig
from typing import Any, Dict, Mapping, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

DIAGNOSTICS_LOGGER = "salespro.diagnostics"
TELEMETRY_LOGGER = "salespro.telemetry"
SQL_LOGGER = "sqlalchemy.engine"


def _flag(env: Mapping[str, str], name: str, default: str = "0") -> bool:
    return env.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def build_logging_config(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if env is None else env
    level = env.get("SALESPRO_LOG_LEVEL", "INFO").upper()

    loggers: Dict[str, Dict[str, Any]] = {
        DIAGNOSTICS_LOGGER: {"level": env.get("SALESPRO_DIAGNOSTICS_LOG_LEVEL", level).upper()},
        TELEMETRY_LOGGER: {"level": "INFO" if _flag(env, "SALESPRO_TELEMETRY_LOG", "1") else "WARNING"},
    }
    if _flag(env, "SALESPRO_DEBUG_SQL"):
        loggers[SQL_LOGGER] = {"level": "INFO"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": loggers,
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(env: Optional[Mapping[str, str]] = None) -> None:
    dictConfig(build_logging_config(env))


__all__ = ["build_logging_config", "configure_logging"]
