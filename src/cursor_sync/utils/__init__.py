"""Utility modules for Cursor Sync."""

from cursor_sync.utils.logger import setup_logging, get_logger

__all__ = ["setup_logging", "get_logger"]
