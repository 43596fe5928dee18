"""Rank catalog candidates against the (title, author) we believe a book has.

Audible and Google Books both return several loosely related hits per
query. Each candidate dict needs "title" and "authors" keys; ranking adds a
"score" key (0-100):

    title similarity   60   token_sort_ratio, best of full title and
                            the part before a ":" subtitle
    author similarity  30   partial_ratio against the closest author
    catalog position   10   2 points lost per rank
"""

import re

from loguru import logger
from rapidfuzz import fuzz

from ..models import UNKNOWN_AUTHOR

log = logger.bind(stage="search")

TITLE_WEIGHT = 0.6
AUTHOR_WEIGHT = 0.3
POSITION_BONUS = 10
POSITION_STEP = 2


def _norm(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


def title_similarity(wanted: str, candidate: str) -> float:
    wanted = _norm(wanted)
    variants = {_norm(candidate), _norm(candidate.split(":", 1)[0])}
    return max(fuzz.token_sort_ratio(wanted, v) for v in variants)


def author_similarity(wanted: str, authors: list[str]) -> float:
    # Unknown authors carry no signal
    if not wanted or wanted == UNKNOWN_AUTHOR:
        return 0.0
    wanted = _norm(wanted)
    return max((fuzz.partial_ratio(wanted, _norm(a)) for a in authors), default=0.0)


def score_results(
    results: list[dict],
    title_hint: str,
    author_hint: str,
) -> list[dict]:
    """Return copies of results with a "score" key, best first.

    Ties keep catalog order.
    """
    scored = []
    for rank, r in enumerate(results):
        total = (
            title_similarity(title_hint, r["title"]) * TITLE_WEIGHT
            + author_similarity(author_hint, r["authors"]) * AUTHOR_WEIGHT
            + max(POSITION_BONUS - rank * POSITION_STEP, 0)
        )
        scored.append({**r, "score": round(total, 1)})

    scored.sort(key=lambda x: x["score"], reverse=True)
    return scored


def best_match(results: list[dict], title_hint: str, author_hint: str) -> dict | None:
    """Highest-scoring candidate, or None for an empty result list."""
    scored = score_results(results, title_hint, author_hint)
    if not scored:
        return None
    best = scored[0]
    log.debug(
        f"Best of {len(scored)} for {title_hint!r}: {best['title']!r} "
        f"score={best['score']:.0f}"
    )
    return best
