import logging

from app.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
NOISY_LOGGERS = ("sqlalchemy.engine", "urllib3", "httpx")


def configure_logging(level: str | None = None) -> None:
    level_name = (level or settings.LOG_LEVEL).upper()
    numeric = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)

    if numeric > logging.DEBUG:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
