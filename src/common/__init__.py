# Common utilities and shared modules
"""
Shared components used across the tracker:
- Project configuration (pydantic settings)
- Logging configuration
"""

from .config import DATA_DIR, PROJECT_ROOT, Settings
from .logging import setup_logging

__all__ = [
    "DATA_DIR",
    "PROJECT_ROOT",
    "Settings",
    "setup_logging",
]
