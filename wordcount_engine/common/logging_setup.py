"""Logging configuration shared by the command line tools."""

import logging
import os

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool = False):
    """Configure root logging. WORDCOUNT_LOG_LEVEL overrides the default level."""
    default_level = 'DEBUG' if verbose else 'INFO'
    level_name = os.getenv('WORDCOUNT_LOG_LEVEL', default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
