"""
Rewatch Error Types.

Requires Python 3.11+.
"""


class RewatchError(Exception):
    """Base class for all rewatch errors."""


class ConfigurationError(RewatchError):
    """Invalid command line or target configuration. Fatal at startup."""


class WatchError(RewatchError):
    """The filesystem watch mechanism failed. Fatal to the whole program."""


class ResolutionError(RewatchError):
    """No existing ancestor could be found for a changed path."""
