"""Centralized path definitions for wiremail.

A single source of truth for on-disk locations. ``WIREMAIL_HOME`` overrides
the base directory (useful for tests and containers).
"""

import os
from pathlib import Path

# Base application directory
WIREMAIL_DIR = Path(os.environ.get("WIREMAIL_HOME", Path.home() / ".wiremail"))

# Subdirectories
LOGS_DIR = WIREMAIL_DIR / "logs"

# Specific files
ENV_FILE_PATH = Path.cwd() / ".env"
