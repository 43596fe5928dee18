"""AudiobookShelf REST client -- push resolved metadata and normalize genres.

Authenticates with a static API token (no login flow). Library items are
matched to scanned files by path: the file path itself, then each ancestor
directory, so a per-book folder item matches any file inside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from ..errors import ConfigError, LibraryError
from ..models import BookMetadata

log = logger.bind(stage="abs")

PAGE_SIZE = 200


@dataclass
class LibraryItem:
    id: str
    path: str
    genres: list[str] = field(default_factory=list)


@dataclass
class PushItem:
    path: str
    metadata: BookMetadata


@dataclass
class PushFailure:
    path: str
    reason: str
    status: int | None = None


@dataclass
class PushResult:
    updated: int = 0
    unmatched: list[str] = field(default_factory=list)
    failed: list[PushFailure] = field(default_factory=list)


class AbsClient:
    """Thin httpx wrapper around the AudiobookShelf library API."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        library_id: str,
        http: httpx.Client | None = None,
    ) -> None:
        if not (base_url.strip() and api_token.strip() and library_id.strip()):
            raise ConfigError(
                "AudiobookShelf not configured. Set ABS_BASE_URL, "
                "ABS_API_TOKEN and ABS_LIBRARY_ID."
            )
        self.library_id = library_id.strip()
        self.http = http or httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_token.strip()}"},
            timeout=30.0,
        )

    @classmethod
    def from_config(cls, config) -> AbsClient:
        return cls(config.abs_base_url, config.abs_api_token, config.abs_library_id)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> AbsClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise LibraryError(f"Failed to reach AudiobookShelf: {e}") from e
        if resp.is_error:
            raise LibraryError(
                f"AudiobookShelf responded with {resp.status_code} for {method} {url}"
            )
        return resp

    def list_items(self) -> list[LibraryItem]:
        """All library items, following pagination until a short page."""
        items: list[LibraryItem] = []
        page = 0
        while True:
            resp = self._request(
                "GET",
                f"/api/libraries/{self.library_id}/items",
                params={"limit": PAGE_SIZE, "page": page},
            )
            results = _json(resp).get("results") or []
            items.extend(_parse_item(raw) for raw in results if isinstance(raw, dict))
            if len(results) < PAGE_SIZE:
                break
            page += 1
        log.debug(f"Fetched {len(items)} library items")
        return items

    def update_media(self, item_id: str, payload: dict[str, Any]) -> bool:
        """PATCH an item's media metadata. Returns the server's `updated` flag."""
        resp = self._request("PATCH", f"/api/items/{item_id}/media", json=payload)
        return bool(_json(resp).get("updated", False))

    def filter_genres(self) -> list[str]:
        resp = self._request("GET", f"/api/libraries/{self.library_id}/filterdata")
        return list(_json(resp).get("genres") or [])

    def delete_genre(self, genre: str) -> None:
        self._request("DELETE", f"/api/genres/{quote(genre, safe='')}")

    def rescan(self) -> None:
        """Ask the server to rescan the library folders for changed files."""
        self._request("POST", f"/api/libraries/{self.library_id}/scan")
        log.info(f"Library rescan triggered for {self.library_id}")

    def push_updates(self, items: list[PushItem]) -> PushResult:
        """Push canonical metadata for scanned paths to matching library items.

        Each library item is updated at most once even if several pushed
        paths resolve to it.
        """
        result = PushResult()
        if not items:
            return result

        library = {
            normalize_path(i.path): i for i in self.list_items() if normalize_path(i.path)
        }

        targets: list[tuple[LibraryItem, PushItem]] = []
        seen_ids: set[str] = set()
        for push in items:
            norm = normalize_path(push.path)
            match = find_matching_item(norm, library) if norm else None
            if match is None:
                result.unmatched.append(push.path)
                continue
            if match.id not in seen_ids:
                seen_ids.add(match.id)
                targets.append((match, push))

        for library_item, push in targets:
            try:
                updated = self.update_media(
                    library_item.id, build_update_payload(push.metadata)
                )
            except LibraryError as e:
                result.failed.append(PushFailure(push.path, str(e)))
                continue
            if updated:
                result.updated += 1
            else:
                result.failed.append(
                    PushFailure(
                        push.path,
                        f"AudiobookShelf reported no updates for {library_item.path}",
                    )
                )

        log.info(
            f"Push complete: {result.updated} updated, "
            f"{len(result.unmatched)} unmatched, {len(result.failed)} failed"
        )
        return result


def _json(resp: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body; proxies and login pages raise LibraryError."""
    try:
        data = resp.json()
    except ValueError as e:
        raise LibraryError(
            f"AudiobookShelf returned a non-JSON body for {resp.request.url.path}: {e}"
        ) from e
    if not isinstance(data, dict):
        raise LibraryError(
            f"AudiobookShelf returned {type(data).__name__}, expected an object"
        )
    return data


def _parse_item(raw: dict) -> LibraryItem:
    metadata = ((raw.get("media") or {}).get("metadata") or {})
    return LibraryItem(
        id=str(raw.get("id", "")),
        path=raw.get("path", "") or "",
        genres=list(metadata.get("genres") or []),
    )


def normalize_path(path: str) -> str:
    """Forward slashes, no trailing slash (except root)."""
    normalized = path.strip().replace("\\", "/")
    while normalized.endswith("/") and len(normalized) > 1:
        normalized = normalized[:-1]
    return normalized


def find_matching_item(path: str, items: dict[str, LibraryItem]) -> LibraryItem | None:
    """Match a path or its nearest ancestor against library item paths."""
    if path in items:
        return items[path]

    current = path
    while "/" in current:
        pos = current.rfind("/")
        if pos == 0:
            return items.get("/")
        current = current[:pos]
        if current in items:
            return items[current]
    return None


def split_authors(author: str) -> list[str]:
    """Split "A & B", "A and B", "A; B", "A / B", "A | B" into names."""
    trimmed = author.strip()
    if not trimmed:
        return []

    if not any(sep in trimmed for sep in ("&", " and ", ";", "/", "|")):
        return [trimmed]

    normalized = (
        trimmed.replace(" & ", ";")
        .replace("&", ";")
        .replace(" and ", ";")
        .replace("/", ";")
        .replace("|", ";")
    )
    return [s.strip() for s in normalized.split(";") if s.strip()]


def build_update_payload(metadata: BookMetadata) -> dict[str, Any]:
    """Build the PATCH /api/items/:id/media body for canonical metadata."""
    meta: dict[str, Any] = {"title": metadata.title}

    def _clean(value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    for key, payload_key in (
        ("subtitle", "subtitle"),
        ("description", "description"),
        ("publisher", "publisher"),
        ("year", "publishedYear"),
        ("isbn", "isbn"),
    ):
        value = _clean(getattr(metadata, key))
        if value:
            meta[payload_key] = value

    narrator = _clean(metadata.narrator)
    if narrator:
        meta["narrators"] = [narrator]

    if metadata.genres:
        meta["genres"] = list(metadata.genres)

    authors = split_authors(metadata.author)
    if authors:
        meta["authors"] = [
            {"id": f"new-{idx}", "name": name} for idx, name in enumerate(authors, 1)
        ]

    series = _clean(metadata.series)
    if series:
        entry: dict[str, Any] = {"id": "new-1", "name": series}
        sequence = _clean(metadata.sequence)
        if sequence:
            entry["sequence"] = sequence
        meta["series"] = [entry]

    return {"metadata": meta}
