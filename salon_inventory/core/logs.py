import logging

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(level=(level or settings.log_level), format=LOG_FORMAT)
