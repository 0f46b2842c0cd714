"""Entrypoint: python -m appmo_chat"""
from __future__ import annotations

import uvicorn

from appmo_chat.config import settings

LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {
            "()": "appmo_chat.api.middleware.correlation_id.CorrelationIdFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["correlation_id"],
        },
    },
    "root": {"handlers": ["default"], "level": settings.LOG_LEVEL},
}


def main() -> None:
    uvicorn.run(
        "appmo_chat.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=LOG_CONFIG,
    )


if __name__ == "__main__":
    main()
