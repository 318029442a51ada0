"""
Infrastructure package: logging setup.
"""

from swapkeeper.infra.logging_cfg import build_logger, log_event, JsonFormatter, ThrottledFilter

__all__ = [
    "build_logger",
    "log_event",
    "JsonFormatter",
    "ThrottledFilter",
]
