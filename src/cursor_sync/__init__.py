"""Cursor Sync - watermark-based incremental synchronization engine."""

__version__ = "1.0.0"
__author__ = "Cursor Sync Contributors"

from cursor_sync.config import Settings, load_settings

__all__ = ["Settings", "load_settings", "__version__"]
