"""mebrca.utils package.

This package provides utility functions for file handling, configuration and
miscellaneous operations.
"""

from .files import (
    download_file,
    download_files,
    ensure_directory_exists,
    get_resource_path,
    read_table,
)
from .varia import (
    CONFIG,
    MEBRCA_TMP_DIR,
    Timer,
    get_optimal_core_count,
    make_log_file,
)

__all__ = [
    "download_file",
    "download_files",
    "ensure_directory_exists",
    "get_optimal_core_count",
    "get_resource_path",
    "make_log_file",
    "read_table",
    "Timer",
    "CONFIG",
    "MEBRCA_TMP_DIR",
]
