from __future__ import annotations


class ArchiverError(Exception):
    """Base class for archive pipeline errors."""


class FetcherInitError(ArchiverError):
    """The page fetcher could not be started. Fatal for the whole run."""


class FetchError(ArchiverError):
    """Navigation failed or timed out. Retryable."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class InvalidArticleError(ArchiverError):
    pass


class ExtractionTooShort(InvalidArticleError):
    """Extracted body text is under the minimum length. Retryable."""

    def __init__(self, url: str, length: int, minimum: int) -> None:
        super().__init__(
            f"Article content too short: {length} < {minimum} chars ({url})"
        )
        self.url = url
        self.length = length
        self.minimum = minimum


class AssetDownloadError(ArchiverError):
    """A single media download failed. The asset is omitted."""


class FilesystemMoveError(ArchiverError):
    """A staged media file could not be moved into its entry folder."""


class InvalidURLError(ArchiverError):
    """An href could not be resolved into an absolute http(s) URL."""
