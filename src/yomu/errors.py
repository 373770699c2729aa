from __future__ import annotations


class YomuError(RuntimeError):
    """Base class for errors raised by yomu."""


class ArticleFetchError(YomuError):
    """Raised when an article page cannot be downloaded."""

    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class UnsupportedSourceError(YomuError):
    """Raised by strict adapter selection when no adapter owns the host."""


class StoreError(YomuError):
    """Raised when the article store cannot read or write a record."""


class NewsListError(YomuError):
    """Raised when the merged news list cannot be served; carries an HTTP status."""

    status_code = 500


class NewsListQueryError(NewsListError):
    """Bad source filter or an offset past the end of the list."""

    status_code = 400


class NewsListUnavailableError(NewsListError):
    """Neither source produced any list entries."""

    status_code = 404


class VoiceVoxError(RuntimeError):
    """Raised when the VoiceVox engine returns an unexpected response."""


class VoiceVoxUnavailableError(ConnectionError):
    """Raised when the VoiceVox engine is unreachable."""


__all__ = [
    "YomuError",
    "ArticleFetchError",
    "UnsupportedSourceError",
    "StoreError",
    "NewsListError",
    "NewsListQueryError",
    "NewsListUnavailableError",
    "VoiceVoxError",
    "VoiceVoxUnavailableError",
]
