"""Utility modules and functions for gcs_resource."""

from gcs_resource.utils.timing import async_timing_context  # noqa: F401
from gcs_resource.utils.timing import log_timing  # noqa: F401
from gcs_resource.utils_core import as_bool  # noqa: F401
from gcs_resource.utils_core import env  # noqa: F401
from gcs_resource.utils_core import format_mib  # noqa: F401


__all__ = [
    "as_bool",
    "env",
    "format_mib",
    "async_timing_context",
    "log_timing",
]
