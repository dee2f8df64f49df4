"""Shared state and error types."""

from .errors import (
    GalleryBotError,
    StrategyLoadError,
    UnsupportedSiteError,
    FetchError,
    NavigationError,
    EmptyResultError,
    AllDownloadsFailedError,
    ArchiveError,
    FilesystemError,
)
from .state import (
    APP_CONTEXT_KEY,
    AppContext,
    SessionRegistry,
    SessionState,
    UserSession,
    get_app_context,
)

__all__ = [
    'GalleryBotError',
    'StrategyLoadError',
    'UnsupportedSiteError',
    'FetchError',
    'NavigationError',
    'EmptyResultError',
    'AllDownloadsFailedError',
    'ArchiveError',
    'FilesystemError',
    'APP_CONTEXT_KEY',
    'AppContext',
    'SessionRegistry',
    'SessionState',
    'UserSession',
    'get_app_context',
]
