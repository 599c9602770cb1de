"""mebrca package.

This package provides tools to classify breast cancer tissue by its DNA
methylation profile and to relate the selected genes to patient survival.
"""

import logging

from mebrca.analysis import MethylSurvivalAnalysis
from mebrca.dtypes import (
    CohortData,
    CohortFilter,
    GDCSource,
    InMemorySource,
    acquire_cohort,
)
from mebrca.utils import make_log_file

LOG_FILE = make_log_file("stdout")


def setup_logging():
    logger = logging.getLogger("mebrca")

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    # File handler
    file_handler = logging.FileHandler(LOG_FILE, mode="a")
    file_handler.setLevel(logging.INFO)

    # Formatter with no milliseconds
    log_format = "%(asctime)s [%(module)s] %(message)s"
    formatter = logging.Formatter(log_format, "%H:%M:%S")
    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    logger.propagate = False

    # Don't show logging statements of other libraries.
    logging.getLogger("kaleido").setLevel(logging.WARNING)
    logging.getLogger("choreographer").setLevel(logging.WARNING)

    logger.debug("Logging is set up")


setup_logging()

__all__ = [
    "CohortData",
    "CohortFilter",
    "GDCSource",
    "InMemorySource",
    "LOG_FILE",
    "MethylSurvivalAnalysis",
    "acquire_cohort",
]
