"""Gallery Downloader Bot - gallery pages to time-limited 7z download links."""

__version__ = '1.0.0'
