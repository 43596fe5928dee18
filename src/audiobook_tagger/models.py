"""Core enums, constants, and record types for the audiobook tagger.

Enums:
    GroupType   -- Structural classification of a book group (single, chapters,
                   series). A flat tag, not a hierarchy.
    FileStatus  -- Whether a file has at least one proposed field change.

Records:
    TagSnapshot, RawFileRecord   -- what a scan discovers on disk
    BookMetadata, CachedEntry    -- canonical metadata and its cached form
    FieldChange, AudioFileResult,
    BookGroup                    -- what a scan proposes
    AudibleMetadata, SeriesInfo,
    GoogleBooksMetadata          -- external source candidates
    ScanProgress                 -- progress event payload
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from enum import StrEnum
from typing import Any


class GroupType(StrEnum):
    SINGLE = "single"
    CHAPTERS = "chapters"
    SERIES = "series"


class FileStatus(StrEnum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".m4b",
        ".m4a",
        ".mp3",
        ".flac",
        ".ogg",
    }
)

UNKNOWN_AUTHOR = "Unknown"
UNKNOWN_GROUP = "Unknown"


@dataclass
class TagSnapshot:
    """Descriptive tags read from one file.

    None means the tag is absent; an empty string means it is present but blank.
    """

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    genre: str | None = None
    year: str | None = None
    comment: str | None = None

    @classmethod
    def empty(cls) -> TagSnapshot:
        return cls()

    @classmethod
    def from_tags(cls, tags: dict[str, str]) -> TagSnapshot:
        """Build a snapshot from a lowercase-keyed ffprobe tag dict."""
        return cls(
            title=tags.get("title"),
            artist=tags.get("artist"),
            album=tags.get("album"),
            album_artist=tags.get("album_artist"),
            genre=tags.get("genre"),
            year=tags.get("date") or tags.get("year"),
            comment=tags.get("comment") or tags.get("description"),
        )


@dataclass(frozen=True)
class RawFileRecord:
    path: str
    filename: str
    tags: TagSnapshot
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class BookMetadata:
    """Canonical metadata for one book -- the single source of truth."""

    title: str
    author: str
    subtitle: str | None = None
    narrator: str | None = None
    series: str | None = None
    sequence: str | None = None
    genres: list[str] = field(default_factory=list)
    publisher: str | None = None
    year: str | None = None
    description: str | None = None
    isbn: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BookMetadata:
        """Build from a JSON-shaped dict.

        Raises ValueError when title/author are missing or not strings.
        Optional fields that are not strings are dropped; numbers are
        stringified (LLMs like to return "year": 2004).
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected object, got {type(data).__name__}")

        title = data.get("title")
        author = data.get("author")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("missing title")
        if not isinstance(author, str) or not author.strip():
            raise ValueError("missing author")

        def _opt(key: str) -> str | None:
            value = data.get(key)
            if isinstance(value, bool) or value is None:
                return None
            if isinstance(value, (int, float)):
                value = str(value)
            if not isinstance(value, str):
                return None
            value = value.strip()
            return value or None

        raw_genres = data.get("genres") or []
        if isinstance(raw_genres, str):
            raw_genres = raw_genres.split(",")
        genres = [
            g.strip() for g in raw_genres if isinstance(g, str) and g.strip()
        ]

        return cls(
            title=title.strip(),
            author=author.strip(),
            subtitle=_opt("subtitle"),
            narrator=_opt("narrator"),
            series=_opt("series"),
            sequence=_opt("sequence"),
            genres=genres,
            publisher=_opt("publisher"),
            year=_opt("year"),
            description=_opt("description"),
            isbn=_opt("isbn"),
        )


@dataclass
class CachedEntry:
    metadata: BookMetadata
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"final_metadata": self.metadata.to_dict(), "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CachedEntry:
        # Stored verbatim, so rebuild without the lenient cleanup in
        # BookMetadata.from_dict
        known = {f.name for f in fields(BookMetadata)}
        stored = {k: v for k, v in data["final_metadata"].items() if k in known}
        return cls(
            metadata=BookMetadata(**stored),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass
class FieldChange:
    old: str
    new: str


@dataclass
class AudioFileResult:
    id: str
    path: str
    filename: str
    status: FileStatus
    changes: dict[str, FieldChange] = field(default_factory=dict)


@dataclass
class BookGroup:
    id: str
    group_name: str
    group_type: GroupType
    files: list[AudioFileResult]
    metadata: BookMetadata
    total_changes: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable form consumed by the display shell."""
        return {
            "id": self.id,
            "group_name": self.group_name,
            "group_type": str(self.group_type),
            "files": [
                {
                    "id": f.id,
                    "path": f.path,
                    "filename": f.filename,
                    "status": str(f.status),
                    "changes": {
                        name: {"old": c.old, "new": c.new}
                        for name, c in f.changes.items()
                    },
                }
                for f in self.files
            ],
            "metadata": self.metadata.to_dict(),
            "total_changes": self.total_changes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BookGroup:
        files = [
            AudioFileResult(
                id=f["id"],
                path=f["path"],
                filename=f["filename"],
                status=FileStatus(f.get("status", FileStatus.UNCHANGED)),
                changes={
                    name: FieldChange(old=c.get("old", ""), new=c.get("new", ""))
                    for name, c in (f.get("changes") or {}).items()
                },
            )
            for f in data.get("files", [])
        ]
        return cls(
            id=str(data["id"]),
            group_name=data["group_name"],
            group_type=GroupType(data.get("group_type", GroupType.SINGLE)),
            files=files,
            metadata=BookMetadata.from_dict(data["metadata"]),
            total_changes=int(data.get("total_changes", 0)),
        )


@dataclass
class SeriesInfo:
    name: str
    position: str | None = None


@dataclass
class AudibleMetadata:
    asin: str
    title: str
    subtitle: str | None = None
    authors: list[str] = field(default_factory=list)
    narrators: list[str] = field(default_factory=list)
    series: list[SeriesInfo] = field(default_factory=list)
    publisher: str | None = None
    release_date: str | None = None
    description: str | None = None
    genre: str | None = None


@dataclass
class GoogleBooksMetadata:
    title: str
    subtitle: str | None = None
    authors: list[str] = field(default_factory=list)
    publisher: str | None = None
    publish_date: str | None = None
    description: str | None = None
    isbn: str | None = None
    genres: list[str] = field(default_factory=list)


@dataclass
class ScanProgress:
    current: int = 0
    total: int = 0
    current_book: str = ""
    elapsed_seconds: int = 0
    estimated_remaining_seconds: int = 0
    files_per_second: float = 0.0
    cached_hits: int = 0
