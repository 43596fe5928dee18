"""Google Books volume search client.

Used as a supplement to Audible: description, publisher, ISBN and a
publish date for the reliable year.
"""

from __future__ import annotations

import httpx
from loguru import logger

from ..genres import normalize_genres
from ..models import GoogleBooksMetadata
from .search import best_match

log = logger.bind(stage="google")

API_URL = "https://www.googleapis.com/books/v1/volumes"


def fetch_from_google_books(
    title: str,
    author: str,
    api_key: str = "",
) -> GoogleBooksMetadata | None:
    """Search Google Books for a title/author, return the best volume or None."""
    parts = [f"intitle:{title}"] if title else []
    if author and author != "Unknown":
        parts.append(f"inauthor:{author}")
    if not parts:
        return None

    params = {"q": " ".join(parts), "maxResults": "10", "printType": "books"}
    if api_key:
        params["key"] = api_key

    log.debug(f"Google Books search: q={params['q']!r}")

    try:
        resp = httpx.get(API_URL, params=params, timeout=30.0)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"Google Books API error: {e}")
        return None
    if not isinstance(data, dict):
        log.warning(f"Google Books returned {type(data).__name__}, expected an object")
        return None

    volumes = [
        item.get("volumeInfo") or {}
        for item in (data.get("items") or [])
        if isinstance(item, dict)
    ]
    candidates = [
        {**v, "title": v.get("title", "") or "", "authors": v.get("authors") or []}
        for v in volumes
        if v.get("title")
    ]
    best = best_match(candidates, title, author)
    if best is None:
        log.debug("Google Books: no results")
        return None

    return GoogleBooksMetadata(
        title=best["title"],
        subtitle=best.get("subtitle") or None,
        authors=best["authors"],
        publisher=best.get("publisher") or None,
        publish_date=best.get("publishedDate") or None,
        description=best.get("description") or None,
        isbn=_extract_isbn(best.get("industryIdentifiers") or []),
        genres=normalize_genres(best.get("categories") or []),
    )


def _extract_isbn(identifiers: list[dict]) -> str | None:
    """Prefer ISBN_13 over ISBN_10."""
    by_type = {i.get("type"): i.get("identifier") for i in identifiers if isinstance(i, dict)}
    return by_type.get("ISBN_13") or by_type.get("ISBN_10") or None
