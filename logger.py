"""Shared structured logger for the LHV Connect client."""

import logging
import os

from aws_lambda_powertools.logging import Logger

_SUPPRESSED_LOGGERS: tuple[str, ...] = ("urllib3", "requests", "charset_normalizer")
for name in _SUPPRESSED_LOGGERS:
    logging.getLogger(name).setLevel(logging.CRITICAL)

logger: Logger = Logger(service=os.getenv("LOG_SERVICE_NAME", "lhv-connect"), level=os.getenv("LOG_LEVEL", "INFO"))
