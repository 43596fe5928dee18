"""Genre policy -- map free-text genres onto a fixed approved taxonomy.

Used as a constraint in the merge prompt, as an output filter on merge
results, and as a standalone batch operation over an AudiobookShelf library.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from .errors import LibraryError

if TYPE_CHECKING:
    from .api.audiobookshelf import AbsClient

log = logger.bind(stage="genres")

MAX_GENRES = 3

APPROVED_GENRES: tuple[str, ...] = (
    "Fantasy",
    "Science Fiction",
    "Mystery",
    "Thriller",
    "Romance",
    "Horror",
    "Historical Fiction",
    "Literary Fiction",
    "Adventure",
    "Young Adult",
    "Children's",
    "Humor",
    "Biography",
    "Memoir",
    "History",
    "Science",
    "Self-Help",
    "Business",
    "Philosophy",
    "Religion & Spirituality",
    "True Crime",
    "Poetry",
    "Classics",
    "Non-Fiction",
    "Fiction",
)

_APPROVED_LOOKUP = {g.casefold(): g for g in APPROVED_GENRES}

# Exact (casefolded) aliases
GENRE_ALIASES: dict[str, str] = {
    "sci-fi": "Science Fiction",
    "scifi": "Science Fiction",
    "sf": "Science Fiction",
    "space opera": "Science Fiction",
    "dystopian": "Science Fiction",
    "cyberpunk": "Science Fiction",
    "epic fantasy": "Fantasy",
    "urban fantasy": "Fantasy",
    "litrpg": "Fantasy",
    "crime": "Mystery",
    "detective": "Mystery",
    "suspense": "Thriller",
    "espionage": "Thriller",
    "teen": "Young Adult",
    "ya": "Young Adult",
    "juvenile fiction": "Children's",
    "kids": "Children's",
    "children": "Children's",
    "comedy": "Humor",
    "autobiography": "Memoir",
    "personal development": "Self-Help",
    "self help": "Self-Help",
    "economics": "Business",
    "money & finance": "Business",
    "religion": "Religion & Spirituality",
    "spirituality": "Religion & Spirituality",
    "nonfiction": "Non-Fiction",
    "non fiction": "Non-Fiction",
    "literature & fiction": "Fiction",
    "general fiction": "Fiction",
    "classic": "Classics",
}

# Ordered substring rules -- more specific keywords first
_KEYWORD_RULES: tuple[tuple[str, str], ...] = (
    ("science fiction", "Science Fiction"),
    ("sci-fi", "Science Fiction"),
    ("historical fiction", "Historical Fiction"),
    ("literary fiction", "Literary Fiction"),
    ("true crime", "True Crime"),
    ("young adult", "Young Adult"),
    ("non-fiction", "Non-Fiction"),
    ("nonfiction", "Non-Fiction"),
    ("self-help", "Self-Help"),
    ("fantasy", "Fantasy"),
    ("mystery", "Mystery"),
    ("detective", "Mystery"),
    ("thriller", "Thriller"),
    ("suspense", "Thriller"),
    ("romance", "Romance"),
    ("horror", "Horror"),
    ("adventure", "Adventure"),
    ("children", "Children's"),
    ("juvenile", "Children's"),
    ("humor", "Humor"),
    ("humour", "Humor"),
    ("biography", "Biography"),
    ("memoir", "Memoir"),
    ("history", "History"),
    ("historical", "History"),
    ("science", "Science"),
    ("business", "Business"),
    ("philosophy", "Philosophy"),
    ("religion", "Religion & Spirituality"),
    ("spiritual", "Religion & Spirituality"),
    ("poetry", "Poetry"),
    ("classic", "Classics"),
    ("fiction", "Fiction"),
)

_SPLIT_RE = re.compile(r"\s*(?:,|/|;|\s&\s|\|)\s*")


def is_approved(genre: str) -> bool:
    return genre in APPROVED_GENRES


def normalize_genre(raw: str) -> str | None:
    """Map one free-text genre to an approved label, or None."""
    text = re.sub(r"\s+", " ", raw).strip()
    if not text:
        return None
    key = text.casefold()

    if key in _APPROVED_LOOKUP:
        return _APPROVED_LOOKUP[key]
    if key in GENRE_ALIASES:
        return GENRE_ALIASES[key]

    for keyword, genre in _KEYWORD_RULES:
        if keyword in key:
            return genre
    return None


def normalize_genres(genres: list[str], limit: int = MAX_GENRES) -> list[str]:
    """Map a genre list onto the approved taxonomy.

    Whole entries are tried first so compound approved labels like
    "Religion & Spirituality" survive; otherwise the entry is split on
    , / ; | and " & ". Order-preserving, de-duplicated, truncated to limit.
    Idempotent: every output label maps to itself.
    """
    result: list[str] = []
    for entry in genres:
        if not isinstance(entry, str):
            continue
        whole = normalize_genre(entry)
        if whole is not None and whole.casefold() == entry.strip().casefold():
            candidates = [whole]
        else:
            parts = [p for p in _SPLIT_RE.split(entry) if p.strip()]
            if len(parts) > 1:
                candidates = [normalize_genre(p) for p in parts]
            else:
                candidates = [whole]
        for genre in candidates:
            if genre and genre not in result:
                result.append(genre)
    return result[:limit]


def split_genre_tag(value: str | None) -> list[str]:
    """Split a comma-joined genre tag into trimmed non-empty parts."""
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


@dataclass
class GenreNormalizationResult:
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"Normalized {self.updated} items, skipped {self.skipped} "
            f"(already correct/empty), {self.failed} failed."
        )


def normalize_library_genres(client: AbsClient) -> GenreNormalizationResult:
    """Rewrite every library item's genres to their normalized form.

    Items are only patched when the normalized list differs from the
    current one, so a second run is a no-op.
    """
    result = GenreNormalizationResult()

    for item in client.list_items():
        current = item.genres
        if not current:
            result.skipped += 1
            continue

        normalized = normalize_genres(current)
        if not normalized:
            log.warning(f"{item.path}: no approved genre for {current}, left as-is")
            result.skipped += 1
            continue
        if normalized == current:
            result.skipped += 1
            continue

        log.debug(f"{item.path}: {current} -> {normalized}")
        try:
            client.update_media(item.id, {"metadata": {"genres": normalized}})
            result.updated += 1
        except LibraryError as e:
            log.warning(f"Genre update failed for {item.id}: {e}")
            result.failed += 1
            result.failures.append(item.id)

    log.info(result.summary())
    return result


def clear_unused_genres(client: AbsClient) -> list[str]:
    """Remove genres listed in the library filter data but used by no item.

    Returns the genres that were removed.
    """
    available = client.filter_genres()
    used: set[str] = set()
    for item in client.list_items():
        used.update(item.genres)

    unused = [g for g in available if g not in used]
    removed = []
    for genre in unused:
        try:
            client.delete_genre(genre)
            removed.append(genre)
        except LibraryError as e:
            log.warning(f"Failed to remove genre {genre!r}: {e}")

    log.info(f"Removed {len(removed)} unused genres ({len(unused) - len(removed)} failed)")
    return removed
