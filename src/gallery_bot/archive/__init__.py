"""
Archive Package - 7z archive creation

Contains:
- ArchiveBuilder: single-file or multi-volume 7z archives
"""

from .archive_builder import ArchiveBuilder, find_volumes, format_bytes, get_directory_size

__all__ = ['ArchiveBuilder', 'find_volumes', 'format_bytes', 'get_directory_size']
