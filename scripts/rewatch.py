#!/usr/bin/env python3
"""
Rewatch Development Runner.

Runs the CLI straight from a checkout without installing it.
Requires Python 3.11+.

Usage:
    python scripts/rewatch.py -p backend -c "pytest -q" -x '__pycache__|\.pytest_cache'
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from cli.main import main


if __name__ == "__main__":
    sys.exit(main())
