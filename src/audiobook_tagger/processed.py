"""Detect files whose tags already match this tool's own output format.

A file we wrote ourselves carries "Narrated by <name>" in its comment and a
comma-joined genre tag of 1-3 entries drawn from the approved taxonomy.
Such groups skip every external call and reuse their tags as-is.
"""

from loguru import logger

from .genres import APPROVED_GENRES, split_genre_tag
from .models import UNKNOWN_AUTHOR, BookMetadata, TagSnapshot

log = logger.bind(stage="processed")

NARRATOR_MARKERS = ("Narrated by ", "Read by ")


def is_already_processed(tags: TagSnapshot) -> bool:
    comment = tags.comment or ""
    has_narrator = any(marker in comment for marker in NARRATOR_MARKERS)
    if not has_narrator or tags.genre is None:
        return False

    parts = [p.strip() for p in tags.genre.split(",")]
    if not 1 <= len(parts) <= 3:
        return False
    return any(p in APPROVED_GENRES for p in parts)


def parse_narrator(comment: str | None) -> str | None:
    """Strip a leading narrator marker from a comment tag."""
    if not comment:
        return None
    for marker in NARRATOR_MARKERS:
        if comment.startswith(marker):
            return comment[len(marker):].strip() or None
    return None


def metadata_from_tags(tags: TagSnapshot, fallback_title: str) -> BookMetadata:
    """Canonical metadata taken straight from already-processed tags."""
    return BookMetadata(
        title=tags.title or fallback_title,
        author=tags.artist or UNKNOWN_AUTHOR,
        narrator=parse_narrator(tags.comment),
        genres=split_genre_tag(tags.genre),
        year=tags.year,
    )
