"""Utility functions and helpers."""

from micro_socks.core.utils.log_config import configure_logging
from micro_socks.core.utils.utils import format_bytes

__all__ = ["configure_logging", "format_bytes"]
