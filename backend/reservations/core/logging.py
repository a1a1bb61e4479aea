import logging
import logging.config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the ``reservations`` logger tree.

    Uvicorn keeps its own handlers; we only touch our namespace so repeated
    calls (tests create several apps) do not stack handlers.
    """
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "loggers": {
            "reservations": {"handlers": ["console"], "level": level.upper(), "propagate": False},
        },
    })
