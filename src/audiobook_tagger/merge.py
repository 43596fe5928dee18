"""Multi-source metadata merge with LLM reconciliation and quality-gated retry.

Sources are the extracted (title, author) identity, an optional Google Books
volume, an optional Audible product, and sample comment tags. One merge
attempt:

    1. reliable_year()       -- year from Audible release date, else Google
                                publish date. Treated as ground truth.
    2. no LLM                -> fallback_metadata() from the best source per field
       LLM                   -> one reconciliation call; parse failure falls
                                back to fallback_metadata()
    3. _apply_constraints()  -- reliable year overwrites whatever came back,
                                genres restricted to the approved taxonomy

score_quality() rates a result 0-100 and merge_with_retry() re-runs the
attempt until it scores >= threshold or the attempt bound is reached, in
which case the last result is returned. Neither path ever raises.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from loguru import logger

from .ai import parse_json_object
from .errors import ServiceError
from .genres import APPROVED_GENRES, MAX_GENRES, normalize_genres
from .models import AudibleMetadata, BookMetadata, GoogleBooksMetadata

if TYPE_CHECKING:
    from .ai import LLMService

log = logger.bind(stage="merge")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_QUALITY_THRESHOLD = 80

_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")


@dataclass
class MergeSources:
    folder_name: str
    extracted_title: str
    extracted_author: str
    google: GoogleBooksMetadata | None = None
    audible: AudibleMetadata | None = None
    sample_comments: list[str] = field(default_factory=list)


@dataclass
class MergeOutcome:
    metadata: BookMetadata
    score: int
    attempts: int
    accepted: bool


def extract_year(date: str | None) -> str | None:
    """First four-digit year in a date string ("2021-01-02" -> "2021")."""
    if not date:
        return None
    match = _YEAR_RE.search(date)
    return match.group(1) if match else None


def reliable_year(
    audible: AudibleMetadata | None,
    google: GoogleBooksMetadata | None,
) -> str | None:
    year = extract_year(audible.release_date) if audible else None
    if year is None and google:
        year = extract_year(google.publish_date)
    return year


def fallback_metadata(sources: MergeSources, year: str | None) -> BookMetadata:
    """Deterministic merge: best available source per field."""
    google, audible = sources.google, sources.audible
    first_series = audible.series[0] if audible and audible.series else None

    return BookMetadata(
        title=sources.extracted_title,
        author=sources.extracted_author,
        subtitle=(google and google.subtitle) or (audible and audible.subtitle) or None,
        narrator=audible.narrators[0] if audible and audible.narrators else None,
        series=first_series.name if first_series else None,
        sequence=first_series.position if first_series else None,
        genres=normalize_genres(google.genres) if google else [],
        publisher=(google and google.publisher) or (audible and audible.publisher) or None,
        year=year,
        description=(google and google.description) or (audible and audible.description) or None,
        isbn=google.isbn if google else None,
    )


def _summarize_google(google: GoogleBooksMetadata | None) -> str:
    if google is None:
        return "No data"
    return (
        f"Title: {google.title!r}, Subtitle: {google.subtitle!r}, "
        f"Authors: {google.authors}, Publisher: {google.publisher!r}, "
        f"Date: {google.publish_date!r}, ISBN: {google.isbn!r}, "
        f"Categories: {google.genres}, Description: {google.description!r}"
    )


def _summarize_audible(audible: AudibleMetadata | None) -> str:
    if audible is None:
        return "No data"
    series = [
        f"{s.name} #{s.position}" if s.position else s.name for s in audible.series
    ]
    return (
        f"Title: {audible.title!r}, Authors: {audible.authors}, "
        f"Narrators: {audible.narrators}, Series: {series}, "
        f"Publisher: {audible.publisher!r}, Release Date: {audible.release_date!r}, "
        f"ASIN: {audible.asin!r}, Genre: {audible.genre!r}, "
        f"Summary: {audible.description!r}"
    )


def build_merge_prompt(sources: MergeSources, year: str | None) -> str:
    if year:
        year_instruction = (
            f"year: Use EXACTLY {year} (from Audible/Google Books -- DO NOT CHANGE)"
        )
    else:
        year_instruction = "year: If not found in sources, return null"

    nonce = uuid.uuid4().hex[:8]
    return (
        f"[{nonce}] Merge audiobook metadata from multiple sources into the best record.\n\n"
        "SOURCES:\n"
        f"1. Folder: {sources.folder_name!r}\n"
        f"2. Extracted from tags: title={sources.extracted_title!r}, "
        f"author={sources.extracted_author!r}\n"
        f"3. Google Books: {_summarize_google(sources.google)}\n"
        f"4. Audible: {_summarize_audible(sources.audible)}\n"
        f"5. Sample comments: {sources.sample_comments[:5]}\n\n"
        "SERIES: if the folder has patterns like 'Book 01' or 'War of The Roses 01', "
        "extract series and sequence.\n\n"
        f"APPROVED GENRES (pick 1-3, use these exact labels):\n"
        f"{', '.join(APPROVED_GENRES)}\n\n"
        "OUTPUT ALL FIELDS:\n"
        "- title: Book title (not chapter). Remove junk.\n"
        "- subtitle: If available from Google Books or Audible\n"
        "- author: Clean author name\n"
        "- narrator: From Audible narrators or 'Narrated by' in comments\n"
        "- series: Series name if the book belongs to one\n"
        "- sequence: Book number in the series (e.g. \"1\" or \"2.5\")\n"
        "- genres: 1-3 from the approved list\n"
        "- publisher: From Google Books or Audible\n"
        f"- {year_instruction}\n"
        "- description: One description, 100-1000 characters\n"
        "- isbn: From Google Books\n\n"
        "Return ONLY valid JSON:\n"
        '{"title":"...","subtitle":null,"author":"...","narrator":"...",'
        '"series":"...","sequence":"...","genres":["..."],"publisher":"...",'
        '"year":"...","description":"...","isbn":"..."}'
    )


_OPTIONAL_FIELDS = (
    "subtitle",
    "narrator",
    "series",
    "sequence",
    "publisher",
    "year",
    "description",
    "isbn",
)


def _apply_constraints(metadata: BookMetadata, year: str | None) -> BookMetadata:
    """Output validation: authoritative year, approved genres, no blank strings."""
    cleaned = {}
    for name in _OPTIONAL_FIELDS:
        value = getattr(metadata, name)
        cleaned[name] = (value.strip() or None) if isinstance(value, str) else value

    if year is not None:
        cleaned["year"] = year

    return replace(
        metadata,
        genres=normalize_genres(metadata.genres, limit=MAX_GENRES),
        **cleaned,
    )


def merge_metadata(sources: MergeSources, llm: LLMService | None = None) -> BookMetadata:
    """One merge attempt. Never raises."""
    year = reliable_year(sources.audible, sources.google)

    if llm is None:
        return _apply_constraints(fallback_metadata(sources, year), year)

    try:
        content = llm.complete(
            build_merge_prompt(sources, year),
            system="You are an audiobook metadata expert. Return valid JSON only.",
            max_tokens=4000,
        )
        merged = BookMetadata.from_dict(parse_json_object(content))
    except (ServiceError, ValueError) as e:
        log.warning(f"LLM merge failed, using fallback: {e}")
        merged = fallback_metadata(sources, year)

    merged = _apply_constraints(merged, year)
    log.debug(
        f"Merged: title={merged.title!r} author={merged.author!r} "
        f"narrator={merged.narrator!r} genres={merged.genres} year={merged.year!r}"
    )
    return merged


def score_quality(
    metadata: BookMetadata,
    extracted_title: str,
    audible: AudibleMetadata | None,
) -> int:
    """Score a merge result 0-100 against objective completeness criteria."""
    score = 0

    if extracted_title in metadata.title:
        score += 30
    else:
        log.debug(f"Title {metadata.title!r} doesn't contain {extracted_title!r}")

    if audible and audible.narrators:
        if metadata.narrator and metadata.narrator.strip():
            score += 20
        else:
            log.debug(f"Missing narrator (Audible has: {audible.narrators})")

    if metadata.description and 100 <= len(metadata.description) <= 1000:
        score += 20

    if 1 <= len(metadata.genres) <= 3:
        score += 15

    if metadata.series and metadata.sequence:
        score += 10

    if metadata.publisher or metadata.year:
        score += 5

    return score


def merge_with_retry(
    sources: MergeSources,
    llm: LLMService | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    threshold: int = DEFAULT_QUALITY_THRESHOLD,
) -> MergeOutcome:
    """Merge until the quality score reaches threshold or attempts run out.

    Exhausting the attempts is not an error: the last result is returned
    with accepted=False.
    """
    max_attempts = max(1, max_attempts)
    metadata = None
    score = 0

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            log.info(f"Retry attempt {attempt}/{max_attempts}")

        metadata = merge_metadata(sources, llm)
        score = score_quality(metadata, sources.extracted_title, sources.audible)

        if score >= threshold:
            log.info(f"Quality: {score}% - PASSED")
            return MergeOutcome(metadata, score, attempt, accepted=True)
        log.info(f"Quality: {score}% - below {threshold}")

    log.warning(f"All {max_attempts} attempts below threshold, using last result")
    return MergeOutcome(metadata, score, max_attempts, accepted=False)
