"""Scan orchestration -- files on disk to proposed per-file tag changes.

Per group (series groups are first expanded into one single-file book per
file, named after the file stem):

    already processed?  -> tags reused as-is, no changes
    cache hit (quick)   -> cached metadata, skip extraction and merge
    extract identity    -> clean (title, author)
    cache hit (clean)   -> cached metadata, skip fetchers and merge
    fetch + merge       -> Audible, Google Books, merge_with_retry()
    store               -> cache the final metadata
    diff                -> FieldChange map per file

Groups are resolved in a ThreadPoolExecutor bounded by max_workers
(1 = strictly sequential). A failure inside one group degrades that group
to tag-derived metadata; it never aborts the scan.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from .api.audible import search_audible
from .api.google_books import fetch_from_google_books
from .collector import TagReader, collect_audio_files
from .config import TaggerConfig
from .diff import build_file_result, unchanged_file_result
from .extract import extract_book_info
from .ffprobe import read_tag_snapshot
from .grouping import ClassifiedGroup, classify
from .merge import MergeSources, merge_with_retry
from .models import (
    UNKNOWN_AUTHOR,
    AudibleMetadata,
    BookGroup,
    BookMetadata,
    GoogleBooksMetadata,
    GroupType,
    RawFileRecord,
    ScanProgress,
)
from .processed import is_already_processed, metadata_from_tags

if TYPE_CHECKING:
    from .ai import LLMService
    from .cache import MetadataCache

log = logger.bind(stage="scan")

AudibleFetcher = Callable[[str, str], AudibleMetadata | None]
GoogleFetcher = Callable[[str, str], GoogleBooksMetadata | None]
ProgressCallback = Callable[[ScanProgress], None]

MAX_SAMPLE_COMMENTS = 5


class CancelToken:
    """Cooperative cancellation flag shared between a scan and its caller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressTracker:
    """Builds ScanProgress snapshots as groups complete.

    Thread-safe. Callback exceptions are logged and never reach the scan.
    """

    def __init__(self, total: int, callback: ProgressCallback | None = None) -> None:
        self.total = total
        self.callback = callback
        self._lock = threading.Lock()
        self._start = time.monotonic()
        self._progress = ScanProgress(total=total)

    def advance(self, book_name: str, cached_hits: int = 0) -> ScanProgress:
        with self._lock:
            elapsed = time.monotonic() - self._start
            p = self._progress
            p.current += 1
            p.current_book = book_name
            p.cached_hits += cached_hits
            p.elapsed_seconds = int(elapsed)
            if elapsed > 0:
                p.files_per_second = p.current / elapsed
                remaining = max(0, self.total - p.current)
                p.estimated_remaining_seconds = int(remaining / p.files_per_second)
            snapshot = ScanProgress(**vars(p))

        if self.callback is not None:
            try:
                self.callback(snapshot)
            except Exception as e:
                log.warning(f"Progress callback failed: {e}")
        return snapshot

    @property
    def cached_hits(self) -> int:
        with self._lock:
            return self._progress.cached_hits


class Scanner:
    """Resolve canonical metadata for every book under a root directory.

    Collaborators default from config: Google Books always, Audible only
    when audible_enabled and audible_cli_path are set. cache=None disables
    caching and llm=None uses the deterministic merge.
    """

    def __init__(
        self,
        config: TaggerConfig,
        cache: MetadataCache | None = None,
        llm: LLMService | None = None,
        audible_fetcher: AudibleFetcher | None = None,
        google_fetcher: GoogleFetcher | None = None,
        reader: TagReader | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.llm = llm

        if audible_fetcher is None and config.has_audible:
            audible_fetcher = partial(search_audible, cli_path=config.audible_cli_path)
        if google_fetcher is None:
            google_fetcher = partial(
                fetch_from_google_books, api_key=config.google_books_api_key
            )
        self.audible_fetcher = audible_fetcher
        self.google_fetcher = google_fetcher
        self.reader = reader or read_tag_snapshot

    def scan(
        self,
        root: Path,
        cancel: CancelToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[BookGroup]:
        """Scan root and return proposed BookGroups sorted by group name.

        Cancellation stops new groups from starting; groups already
        resolved are returned.

        Raises ScanError if root is not a directory.
        """
        cancel = cancel or CancelToken()
        start = time.monotonic()

        records = collect_audio_files(root, self.reader)
        classified = classify(records)
        tracker = ProgressTracker(len(classified), on_progress)

        workers = max(1, self.config.max_workers)
        log.info(
            f"Scanning {len(records)} files in {len(classified)} groups "
            f"(workers={workers})"
        )

        if workers == 1:
            resolved = []
            for group in classified:
                if cancel.cancelled:
                    break
                resolved.append(self._resolve_group(group, cancel, tracker))
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self._resolve_group, group, cancel, tracker)
                    for group in classified
                ]
                resolved = [f.result() for f in futures]

        if cancel.cancelled:
            log.warning("Scan cancelled -- returning completed groups only")

        # Ids follow group key order regardless of completion order
        books: list[BookGroup] = []
        for group_books in resolved:
            for book in group_books:
                book.id = str(len(books))
                books.append(book)
        books.sort(key=lambda b: b.group_name)

        elapsed = time.monotonic() - start
        rate = len(records) / elapsed if elapsed > 0 else 0.0
        log.info(
            f"Scan complete: {len(books)} books, {tracker.cached_hits} cached, "
            f"{rate:.1f} files/sec, {elapsed:.1f}s"
        )
        return books

    def _resolve_group(
        self,
        group: ClassifiedGroup,
        cancel: CancelToken,
        tracker: ProgressTracker,
    ) -> list[BookGroup]:
        if cancel.cancelled:
            return []

        log.info(f"Processing group: {group.key} ({group.group_type}, {len(group.files)} files)")
        books: list[BookGroup] = []
        cached_hits = 0

        if group.group_type == GroupType.SERIES:
            log.info(f"Series detected -- resolving {len(group.files)} books separately")
            for record in group.files:
                if cancel.cancelled:
                    log.info(f"Cancelled inside series {group.key!r}")
                    break
                book, cached = self._resolve_book(
                    Path(record.filename).stem, [record], GroupType.SINGLE
                )
                books.append(book)
                cached_hits += int(cached)
        else:
            book, cached = self._resolve_book(group.key, group.files, group.group_type)
            books.append(book)
            cached_hits += int(cached)

        tracker.advance(group.key, cached_hits)
        return books

    def _resolve_book(
        self,
        name: str,
        files: list[RawFileRecord],
        group_type: GroupType,
    ) -> tuple[BookGroup, bool]:
        """Resolve one book. Returns (group, served_from_cache). Never raises."""
        try:
            return self._resolve_book_unsafe(name, files, group_type)
        except Exception as e:
            log.error(f"Error resolving {name!r}, keeping existing tags: {e}")
            metadata = metadata_from_tags(files[0].tags, name)
            return _unchanged_group(name, files, group_type, metadata), False

    def _resolve_book_unsafe(
        self,
        name: str,
        files: list[RawFileRecord],
        group_type: GroupType,
    ) -> tuple[BookGroup, bool]:
        sample = files[0]

        if is_already_processed(sample.tags):
            log.info(f"{name!r} already processed -- using existing tags")
            metadata = metadata_from_tags(sample.tags, name)
            return _unchanged_group(name, files, group_type, metadata), False

        quick_title = sample.tags.title or name
        quick_author = sample.tags.artist or sample.tags.album_artist or UNKNOWN_AUTHOR
        cached = self._cache_lookup(quick_title, quick_author)
        if cached is not None:
            log.info(f"{name!r} served from cache")
            return _changed_group(name, files, group_type, cached), True

        title, author = extract_book_info(sample, name, self.llm)

        cached = self._cache_lookup(title, author)
        if cached is not None:
            log.info(f"{name!r} served from cache after extraction")
            return _changed_group(name, files, group_type, cached), True

        audible = self.audible_fetcher(title, author) if self.audible_fetcher else None
        google = self.google_fetcher(title, author) if self.google_fetcher else None
        if audible is None and google is None:
            log.warning(f"No external metadata found for {title!r} by {author!r}")

        comments = [f.tags.comment for f in files if f.tags.comment]
        outcome = merge_with_retry(
            MergeSources(
                folder_name=name,
                extracted_title=title,
                extracted_author=author,
                google=google,
                audible=audible,
                sample_comments=comments[:MAX_SAMPLE_COMMENTS],
            ),
            self.llm,
            max_attempts=self.config.max_merge_attempts,
            threshold=self.config.quality_threshold,
        )

        if self.cache is not None:
            self.cache.store(title, author, outcome.metadata)

        return _changed_group(name, files, group_type, outcome.metadata), False

    def _cache_lookup(self, title: str, author: str) -> BookMetadata | None:
        if self.cache is None:
            return None
        return self.cache.lookup(title, author)


def _changed_group(
    name: str,
    files: list[RawFileRecord],
    group_type: GroupType,
    metadata: BookMetadata,
) -> BookGroup:
    results = [build_file_result(f, metadata) for f in files]
    return BookGroup(
        id="",
        group_name=name,
        group_type=group_type,
        files=results,
        metadata=metadata,
        total_changes=sum(1 for r in results if r.changes),
    )


def _unchanged_group(
    name: str,
    files: list[RawFileRecord],
    group_type: GroupType,
    metadata: BookMetadata,
) -> BookGroup:
    return BookGroup(
        id="",
        group_name=name,
        group_type=group_type,
        files=[unchanged_file_result(f) for f in files],
        metadata=metadata,
        total_changes=0,
    )
