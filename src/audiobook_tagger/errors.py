"""Exception hierarchy for the audiobook tagger.

Only CLI-level misuse surfaces to the user. Everything raised inside a scan
(service failures, unreadable tags, cache I/O) is caught at the component
boundary and degraded to a fallback value.
"""


class TaggerError(Exception):
    """Base exception for all tagger errors."""


class ConfigError(TaggerError):
    """Invalid or missing configuration."""


class ScanError(TaggerError):
    """A scan could not start (e.g. the root directory does not exist)."""


class ServiceError(TaggerError):
    """An external service (LLM, Audible, Google Books, AudiobookShelf) failed."""

    def __init__(self, service: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


class TagWriteError(TaggerError):
    """Writing tags back to an audio file failed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class LibraryError(TaggerError):
    """The library-management service rejected or failed a request."""
