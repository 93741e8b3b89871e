"""
Utility modules for the wizard engine.
"""

from .formatting import format_file_size, format_percent
from .config import Config

__all__ = ["format_file_size", "format_percent", "Config"]
