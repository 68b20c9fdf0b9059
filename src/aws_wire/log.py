# src/aws_wire/log.py

"""
Structured logging setup.

Library modules log through ``logging.getLogger(__name__)`` and never install
handlers themselves. Applications call ``configure_logging`` once to get a
Powertools JSON logger and have the ``aws_wire`` loggers share its handler
and formatting, so ``extra=`` fields land as top-level JSON keys.
"""

import logging

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers

from .config import ClientConfig, get_config

PACKAGE_LOGGER = "aws_wire"


def configure_logging(config: ClientConfig | None = None) -> Logger:
    config = config or get_config()
    logger = Logger(service=config.service_name, level=config.log_level)

    # The package logger must exist before it can be found and configured.
    logging.getLogger(PACKAGE_LOGGER)
    copy_config_to_registered_loggers(
        source_logger=logger,
        log_level=config.log_level,
        include={PACKAGE_LOGGER},
    )
    return logger
