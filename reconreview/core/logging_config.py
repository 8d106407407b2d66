"""dictConfig settings for third-party loggers.

The ``reconreview`` namespace itself is configured by
``reconreview.core.logging.setup_logging``; this only tones down the
libraries that are chatty at INFO.
"""

LOGGING_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "httpx": {"level": "WARNING"},
        "httpcore": {"level": "WARNING"},
        "sqlalchemy.engine": {"level": "WARNING"},
        "uvicorn.access": {"level": "INFO"},
    },
    "root": {"level": "WARNING", "handlers": ["console"]},
}
