"""Utility modules for tablesync."""

from tablesync.utils.helpers import (
    generate_id,
    parse_duration,
    prefixed_name,
    trusted_watermark_column,
)
from tablesync.utils.logging import TimingLogger, get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "TimingLogger",
    "generate_id",
    "parse_duration",
    "prefixed_name",
    "trusted_watermark_column",
]
