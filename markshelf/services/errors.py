"""Exceptions raised by the ingestion pipeline and its collaborators."""


class MarkshelfError(Exception):
    """Base class for service-layer errors."""


class InvalidURL(MarkshelfError, ValueError):
    """Raised when a URL is malformed, non-HTTP(S) or points at a private host."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(reason)


class InvalidPayload(MarkshelfError, ValueError):
    """Raised when an incoming bookmark descriptor has the wrong shape."""


class EmptyBatchError(MarkshelfError):
    """Raised when an ingestion call carries no bookmarks at all."""

    def __init__(self) -> None:
        super().__init__("No bookmarks provided")


class StoreError(MarkshelfError):
    """Raised when a write or read against the bookmark store fails."""


class CategoryCreateFailed(MarkshelfError):
    """Raised when a category path could not be created or recovered."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class InsertChunkFailed(MarkshelfError):
    """Raised for a bookmark chunk that the store refused as a whole."""

    def __init__(self, index: int, size: int, cause: Exception) -> None:
        self.index = index
        self.size = size
        self.cause = cause
        super().__init__(f"Bookmark chunk {index} failed: {cause}")


class AIConfigurationError(MarkshelfError):
    """Raised when the AI backend is not configured."""


class AIServiceError(MarkshelfError):
    """Raised when the AI backend answers with an error or garbage."""
