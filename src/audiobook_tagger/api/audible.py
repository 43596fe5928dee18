"""Audible catalog search via the audible-cli integration.

Queries the Audible product catalog through `audible api` (an authenticated
audible-cli profile) and returns the best-scoring product as AudibleMetadata.
"""

from __future__ import annotations

import html
import json
import re
import subprocess

from loguru import logger

from ..models import AudibleMetadata, SeriesInfo
from .search import best_match

log = logger.bind(stage="audible")

RESPONSE_GROUPS = (
    "category_ladders,contributors,media,product_desc,"
    "product_attrs,product_extended_attrs,series,product_details"
)


def search_products(query: str, cli_path: str, timeout: float = 60.0) -> list[dict]:
    """Run an Audible catalog search, return up to 10 parsed result dicts.

    Each result dict contains: asin, title, subtitle, authors (list),
    narrators (list), series (list of {name, position}),
    release_date, publisher_name, publisher_summary, genre.
    Returns [] on any failure.
    """
    cmd = [
        cli_path,
        "api",
        "1.0/catalog/products",
        "-p", f"keywords={query}",
        "-p", "num_results=10",
        "-p", "products_sort_by=Relevance",
        "-p", f"response_groups={RESPONSE_GROUPS}",
    ]
    log.debug(f"Audible search: query={query!r}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        log.warning(f"audible-cli failed: {e}")
        return []

    if result.returncode != 0:
        log.warning(f"audible-cli exited with {result.returncode}: {result.stderr[-300:]}")
        return []

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        log.warning(f"audible-cli returned invalid JSON: {e}")
        return []

    products = data.get("products", []) if isinstance(data, dict) else []
    results = [_parse_product(p) for p in products if isinstance(p, dict)]
    log.debug(f"Audible results: {len(results)} products")
    return results


def search_audible(title: str, author: str, cli_path: str) -> AudibleMetadata | None:
    """Search Audible for a book and return the best match, or None."""
    query = f"{title} {author}".strip() if author and author != "Unknown" else title
    best = best_match(search_products(query, cli_path), title, author)
    if best is None:
        return None

    return AudibleMetadata(
        asin=best["asin"],
        title=best["title"],
        subtitle=best["subtitle"] or None,
        authors=best["authors"],
        narrators=best["narrators"],
        series=[SeriesInfo(s["name"], s["position"] or None) for s in best["series"]],
        publisher=best["publisher_name"] or None,
        release_date=best["release_date"] or None,
        description=best["publisher_summary"] or None,
        genre=best["genre"] or None,
    )


def _parse_product(p: dict) -> dict:
    authors = [a.get("name", "") for a in (p.get("authors") or []) if a.get("name")]
    narrators = [n.get("name", "") for n in (p.get("narrators") or []) if n.get("name")]

    series = [
        {"name": s.get("title", ""), "position": s.get("sequence", "") or ""}
        for s in _sort_series(p.get("series") or [])
        if s.get("title")
    ]

    return {
        "asin": p.get("asin", ""),
        "title": p.get("title", "") or "",
        "subtitle": p.get("subtitle", "") or "",
        "authors": authors,
        "narrators": narrators,
        "series": series,
        "release_date": p.get("release_date", "") or "",
        "publisher_name": p.get("publisher_name", "") or "",
        "publisher_summary": _strip_html(p.get("publisher_summary", "") or ""),
        "genre": _extract_genre(p.get("category_ladders") or []),
    }


def _series_position(series: dict) -> float:
    try:
        return float(series.get("sequence") or "")
    except ValueError:
        return float("inf")


def _sort_series(series_list: list[dict]) -> list[dict]:
    """Numbered sub-series before the umbrella series that contains them."""
    return sorted(series_list, key=_series_position)


def _extract_genre(category_ladders: list[dict]) -> str:
    """Join the first category ladder as "Science Fiction/Space Opera"."""
    for entry in category_ladders[:1]:
        return "/".join(step["name"] for step in entry.get("ladder", []) if step.get("name"))
    return ""


def _strip_html(text: str) -> str:
    plain = html.unescape(re.sub(r"<[^>]+>", " ", text))
    return re.sub(r"\s+", " ", plain).strip()
