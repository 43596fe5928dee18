"""Folder-to-book grouping and group type classification.

Files are grouped by their parent folder name. Book-number markers in the
folder name are canonicalized so "Foo (book #12)", "Foo (Book#12)" and
"Foo - Book #12 - Unabridged" land in the same group.

Group type decision table (first matching row wins):

    1 file                                               -> single
    any filename has a chapter/part/track/disc marker
      or a numeric leading token                         -> chapters
    every present title tag is identical                 -> chapters
    more than 5 files                                    -> chapters
    every filename has a book-number marker, or every
      file has a distinct non-empty album tag            -> series
    otherwise                                            -> chapters
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .models import UNKNOWN_GROUP, GroupType, RawFileRecord

log = logger.bind(stage="grouping")

MAX_UNMARKED_CHAPTERS = 5

_BOOK_NUMBER_RE = re.compile(r"book\s*#\s*(\d+)", re.IGNORECASE)
_TRAILING_SEPARATORS = " \t([{-_,:;."

_CHAPTER_MARKERS = (" ch ", " ch.", "chapter", "track", "part ", "disc")
_LEADING_NUMBER_RE = re.compile(r"^\d+[\s._-]")
_FILENAME_BOOK_RE = re.compile(
    r"\b(?:book|bk|vol(?:ume)?)\.?\s*#?\s*\d+|#\s*\d+",
    re.IGNORECASE,
)


@dataclass
class ClassifiedGroup:
    key: str
    group_type: GroupType
    files: list[RawFileRecord]


def group_key(parent_name: str) -> str:
    """Derive the group key for a parent folder name.

    Examples:
        "Magic Tree House (book #12)"        -> "Magic Tree House (Book #12)"
        "Magic Tree House (Book#12)"         -> "Magic Tree House (Book #12)"
        "Magic Tree House - Book #12 - MP3"  -> "Magic Tree House (Book #12)"
        ""                                   -> "Unknown"
    """
    name = parent_name.strip()
    if not name:
        return UNKNOWN_GROUP

    match = _BOOK_NUMBER_RE.search(name)
    if not match:
        return name

    number = int(match.group(1))
    base = name[: match.start()].rstrip(_TRAILING_SEPARATORS)
    if not base:
        return f"Book #{number}"
    return f"{base} (Book #{number})"


def group_records(records: list[RawFileRecord]) -> dict[str, list[RawFileRecord]]:
    """Partition records by group key; each group sorted by filename."""
    groups: dict[str, list[RawFileRecord]] = {}
    for record in records:
        parent = Path(record.path).parent.name
        groups.setdefault(group_key(parent), []).append(record)

    for files in groups.values():
        files.sort(key=lambda r: r.filename)
    return groups


def has_chapter_markers(filename: str) -> bool:
    name = filename.lower()
    if any(marker in name for marker in _CHAPTER_MARKERS):
        return True
    return bool(_LEADING_NUMBER_RE.match(name))


def detect_group_type(files: list[RawFileRecord]) -> GroupType:
    """Classify a group of files. See the module docstring for the table."""
    if len(files) == 1:
        return GroupType.SINGLE

    if any(has_chapter_markers(f.filename) for f in files):
        return GroupType.CHAPTERS

    titles = {f.tags.title for f in files if f.tags.title is not None}
    if len(titles) == 1:
        return GroupType.CHAPTERS

    if len(files) > MAX_UNMARKED_CHAPTERS:
        return GroupType.CHAPTERS

    if all(_FILENAME_BOOK_RE.search(Path(f.filename).stem) for f in files):
        return GroupType.SERIES

    albums = [(f.tags.album or "").strip() for f in files]
    if all(albums) and len(set(albums)) == len(albums):
        return GroupType.SERIES

    return GroupType.CHAPTERS


def classify(records: list[RawFileRecord]) -> list[ClassifiedGroup]:
    """Group records and classify each group, sorted by key."""
    grouped = group_records(records)
    result = []
    for key in sorted(grouped):
        files = grouped[key]
        group_type = detect_group_type(files)
        log.debug(f"Group {key!r}: {group_type} ({len(files)} files)")
        result.append(ClassifiedGroup(key=key, group_type=group_type, files=files))
    return result
