"""Utility functions."""

from .helpers import setup_logging, setup_logging_from_config, get_timestamp, safe_divide, utc_now

__all__ = ["setup_logging", "setup_logging_from_config", "get_timestamp", "safe_divide", "utc_now"]
