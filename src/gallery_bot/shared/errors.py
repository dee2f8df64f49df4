"""Error taxonomy for the extraction, download and archive pipeline."""


class GalleryBotError(Exception):
    """Base exception for pipeline errors.

    ``user_message`` is safe to show in chat.
    """

    default_message = "Something went wrong"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class StrategyLoadError(GalleryBotError):
    """Raised when the strategy store cannot be read at all."""
    default_message = "Strategy configuration could not be loaded"


class UnsupportedSiteError(GalleryBotError):
    """Raised when no strategy matches the URL's domain."""
    default_message = "This site is not supported"

    def __init__(self, domain: str, supported=None):
        self.domain = domain
        self.supported = list(supported or [])
        super().__init__(f"{domain} is not supported yet")


class FetchError(GalleryBotError):
    """Raised on HTTP or network failure."""
    default_message = "Failed to fetch page"


class NavigationError(GalleryBotError):
    """Raised when the headless browser times out or crashes."""
    default_message = "Browser failed to load the page"


class EmptyResultError(GalleryBotError):
    """Raised when zero galleries or zero images are found."""
    default_message = "Nothing found on this page"


class AllDownloadsFailedError(GalleryBotError):
    """Raised when a batch produced zero successful downloads."""
    default_message = "Failed to download any images"


class ArchiveError(GalleryBotError):
    """Raised when compression fails or produces no output."""
    default_message = "Failed to create archive"


class FilesystemError(GalleryBotError):
    """Raised when scratch allocation or relocation fails."""
    default_message = "File system operation failed"
