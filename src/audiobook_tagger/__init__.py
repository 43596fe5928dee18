"""Audiobook Tagger -- resolve canonical metadata for audiobook collections.

Core modules:
    config     -- Tagger configuration via pydantic-settings (PIPELINE_LLM_*, ABS_* env vars)
    cli        -- Click CLI: scan, write, push, genre maintenance, cache management
    scanner    -- Scan orchestration with bounded parallelism, cancellation and progress
    collector  -- Audio file discovery (symlink-safe walk, hidden files skipped)
    grouping   -- Folder-to-book grouping and single/chapters/series classification
    processed  -- Detection of files already tagged by this tool
    cache      -- JSON-file metadata cache keyed by normalized (title, author)
    extract    -- Clean (title, author) extraction, LLM-assisted with tag fallback
    merge      -- Multi-source merge, quality scoring and bounded retry
    genres     -- Approved genre taxonomy, normalization, library batch operations
    diff       -- Per-file field change maps
    tagging    -- Writing approved changes back via ffmpeg
    ai         -- LLM completion via any OpenAI-compatible endpoint
                  (LiteLLM, OpenAI, Ollama) and JSON response decoding
    ffprobe    -- Tag reading via ffprobe subprocess

Subpackages:
    api        -- External API clients (Audible, Google Books, AudiobookShelf, fuzzy scoring)
"""
