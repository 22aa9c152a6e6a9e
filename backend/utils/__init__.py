"""
Rewatch Utilities Package.

Common utilities shared across all modules.
Requires Python 3.11+.
"""

from utils.config import Settings, get_settings
from utils.errors import ConfigurationError, ResolutionError, RewatchError, WatchError
from utils.logger import configure_logging, get_logger, logger, LoggerMixin

__all__ = [
    "Settings",
    "get_settings",
    "ConfigurationError",
    "ResolutionError",
    "RewatchError",
    "WatchError",
    "configure_logging",
    "get_logger",
    "logger",
    "LoggerMixin",
]
