"""Book identity extraction -- a clean (title, author) pair from noisy tags."""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

from loguru import logger

from .ai import parse_json_object
from .errors import ServiceError
from .models import UNKNOWN_AUTHOR, RawFileRecord

if TYPE_CHECKING:
    from .ai import LLMService

log = logger.bind(stage="extract")

# Suffix this tool itself appends to multi-part titles
_OWN_PART_SUFFIX_RE = re.compile(r"\s+-\s+Part\s+\d+\s*$")


def fallback_book_info(record: RawFileRecord, group_key: str) -> tuple[str, str]:
    return (
        record.tags.title or group_key,
        record.tags.artist or UNKNOWN_AUTHOR,
    )


def extract_book_info(
    record: RawFileRecord,
    group_key: str,
    llm: LLMService | None = None,
) -> tuple[str, str]:
    """Extract (book_title, author) for a group from one representative file.

    Without an LLM, or on any service/parse failure, returns
    (tag title or group key, tag artist or "Unknown").
    """
    fallback_title, fallback_author = fallback_book_info(record, group_key)
    if llm is None:
        return fallback_title, fallback_author

    tags = record.tags
    clean_title = (
        _OWN_PART_SUFFIX_RE.sub("", tags.title).strip() if tags.title else None
    )
    nonce = uuid.uuid4().hex[:8]

    prompt = (
        f"[{nonce}] Extract the BOOK title and AUTHOR from these audiobook "
        "file tags. Ignore chapter/track numbers.\n\n"
        f"FOLDER NAME: {group_key}\n"
        f"FILENAME: {record.filename}\n"
        "FILE TAGS:\n"
        f"- Title: {clean_title!r}\n"
        f"- Artist: {tags.artist!r}\n"
        f"- Album: {tags.album!r}\n\n"
        "These tags may have been cleaned already. If the title or artist "
        "already looks clean, use it as-is.\n\n"
        "Otherwise extract the actual BOOK title and AUTHOR name. Remove:\n"
        "- Track/Chapter numbers\n"
        "- Book numbers (#54, #55, etc)\n"
        "- Series markers\n"
        "- File format info (320kbps, Unabridged, etc)\n\n"
        'Return ONLY valid JSON: {"book_title":"...","author":"..."}'
    )

    try:
        content = llm.complete(
            prompt,
            system='Extract book info. Return JSON: {"book_title":"...","author":"..."}',
            max_tokens=300,
        )
        data = parse_json_object(content)
    except (ServiceError, ValueError) as e:
        log.warning(f"Book info extraction failed for {group_key!r}: {e}")
        return fallback_title, fallback_author

    title = data.get("book_title")
    author = data.get("author")
    title = title.strip() if isinstance(title, str) and title.strip() else fallback_title
    author = author.strip() if isinstance(author, str) and author.strip() else fallback_author

    log.debug(f"Extracted: title={title!r} author={author!r}")
    return title, author
