"""Contains auxiliary functions, the package configuration and a debug timer.

Usage:
    timer = Timer()
    timer.start()
    # process to be measured
    timer.stop("process_name")
"""

import logging
import tempfile
import time
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from multiprocessing import cpu_count
from pathlib import Path
from uuid import uuid4

import psutil
import toml

from mebrca.utils.files import get_resource_path

__all__ = ["CONFIG", "MEBRCA_TMP_DIR", "Timer", "get_optimal_core_count"]


def get_app_version():
    """Retrieve the app version from the package metadata."""
    try:
        return version("mebrca")
    except PackageNotFoundError:
        return "unknown"


logger = logging.getLogger(__name__)

version_str = get_app_version().replace(".", "_")
MEBRCA_TMP_DIR = Path(tempfile.gettempdir()) / f"mebrca-{version_str}"
LOG_DIR = MEBRCA_TMP_DIR / "log"

LOG_DIR.mkdir(parents=True, exist_ok=True)


def make_log_file(suffix):
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = uuid4().hex[:8]
    log_file = LOG_DIR / f"{suffix}-{timestamp}-{unique_id}.log"
    log_file.touch(exist_ok=True)
    return log_file


class Timer:
    """Measures the time elapsed in milliseconds."""

    def __init__(self):
        self.time0 = time.time()

    def start(self):
        """Resets timer."""
        self.time0 = time.time()

    def stop(self, text=None):
        """Resets timer, logs and returns elapsed time."""
        delta_time = 1000 * (time.time() - self.time0)
        comment = "" if text is None else "(" + text + ")"
        logger.info("Time passed: %.0f ms %s", delta_time, comment)
        self.time0 = time.time()
        return delta_time


def get_optimal_core_count(reserve_mem_gb=1.0):
    """Determine optimal core count based on CPU and memory constraints."""
    process = psutil.Process()
    current_proc_mem_gb = process.memory_info().rss / 1e9
    avail_mem_gb = psutil.virtual_memory().available / 1e9
    usable_mem_gb = max(0, avail_mem_gb - reserve_mem_gb)

    if current_proc_mem_gb <= 0:
        # Fallback: use 1 core if memory usage can't be estimated
        return 1

    mem_based_cores = int(usable_mem_gb // current_proc_mem_gb)

    return max(1, min(cpu_count() - 1, mem_based_cores))


def load_config():
    """Loads the configuration from the package's config.toml."""
    config_path = get_resource_path("mebrca", "data/config.toml")
    return toml.load(config_path)


CONFIG = load_config()
