"""
Rewatch CLI Package.

Requires Python 3.11+.
"""

from cli.main import main

__all__ = ["main"]
