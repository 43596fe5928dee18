"""FFprobe subprocess wrappers for reading audio file tags and properties."""

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from .genres import split_genre_tag
from .models import TagSnapshot

log = logger.bind(stage="ffprobe")


@dataclass
class FileInspection:
    """Everything ffprobe reports about one file, tags left unnormalized."""

    path: str
    format_name: str
    duration_seconds: float | None = None
    bitrate: int | None = None
    sample_rate: int | None = None
    codec: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    stream_tags: dict[str, str] = field(default_factory=dict)


def _run_ffprobe(args: list[str], timeout: float = 60) -> subprocess.CompletedProcess:
    """Run ffprobe with common flags."""
    return subprocess.run(
        ["ffprobe", "-v", "error"] + args,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def get_tags(file: Path) -> dict | None:
    """Get format-level metadata tags from an audio file.

    Returns dict with lowercase keys (title, artist, album_artist, album,
    genre, date, comment), or None if ffprobe could not read the file.
    """
    result = _run_ffprobe(["-show_entries", "format_tags", "-of", "json", str(file)])
    if result.returncode != 0:
        return None
    try:
        data = json.loads(result.stdout)
        raw = data.get("format", {}).get("tags", {})
        # Normalize keys to lowercase
        return {k.lower(): v for k, v in raw.items()}
    except (json.JSONDecodeError, AttributeError):
        return None


def read_tag_snapshot(file: Path) -> TagSnapshot | None:
    """Read a TagSnapshot from a file, or None if it is unreadable."""
    try:
        tags = get_tags(file)
    except (OSError, subprocess.SubprocessError) as e:
        log.warning(f"Failed to read tags from {file.name}: {e}")
        return None
    if tags is None:
        log.debug(f"No readable tags: {file.name}")
        return None
    return TagSnapshot.from_tags(tags)


def _number(value, kind):
    try:
        return kind(value)
    except (TypeError, ValueError):
        return None


def inspect_file(file: Path) -> FileInspection:
    """Raw tag dump plus container and first audio stream properties.

    Raises ValueError if ffprobe cannot read the file.
    """
    result = _run_ffprobe(["-show_format", "-show_streams", "-of", "json", str(file)])
    if result.returncode != 0:
        raise ValueError(f"ffprobe could not read {file}: {result.stderr.strip()}")

    data = json.loads(result.stdout)
    if not isinstance(data, dict):
        raise ValueError(f"unexpected ffprobe output for {file}")

    fmt = data.get("format") or {}
    audio = next(
        (s for s in data.get("streams") or [] if s.get("codec_type") == "audio"),
        {},
    )
    bitrate = _number(fmt.get("bit_rate"), int) or _number(audio.get("bit_rate"), int)

    return FileInspection(
        path=str(file),
        format_name=fmt.get("format_long_name") or fmt.get("format_name") or "unknown",
        duration_seconds=_number(fmt.get("duration"), float),
        bitrate=bitrate,
        sample_rate=_number(audio.get("sample_rate"), int),
        codec=audio.get("codec_name"),
        tags=dict(fmt.get("tags") or {}),
        stream_tags=dict(audio.get("tags") or {}),
    )


def verify_genres(file: Path) -> list[str]:
    """Genre entries as they read back from the file.

    Raises ValueError if the tags cannot be read.
    """
    tags = get_tags(file)
    if tags is None:
        raise ValueError(f"ffprobe could not read tags from {file}")
    return split_genre_tag(tags.get("genre"))
