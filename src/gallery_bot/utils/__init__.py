"""
Utils Package - Filesystem lifecycle

Contains:
- TempSpaceManager: scratch dirs, publishing, expiry
- CleanupManager: periodic sweep loop
"""

from .temp_manager import TempSpaceManager
from .cleanup_manager import CleanupManager

__all__ = ['TempSpaceManager', 'CleanupManager']
