"""Logging setup shared by the API process and scripts."""

import logging

from crmdesk.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure root logging from settings.

    Safe to call more than once; handlers are only installed the first time.
    """

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("crmdesk").setLevel(settings.log_level)
