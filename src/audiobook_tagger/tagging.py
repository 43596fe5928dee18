"""Write approved field changes back to audio files with ffmpeg.

Field map (change name -> container tags):

    title        -> title
    author       -> artist, album_artist
    genre        -> genre
    narrator     -> composer (name) + comment ("Narrated by <name>")
    description  -> comment, unless a narrator is also being written or the
                    text already mentions a narrator
    year         -> date
    series       -> series, show
    sequence     -> series-part

Audio streams are copied untouched (-c copy); chapters and cover art are
preserved. Output goes to a temp file next to the original, then replaces
it atomically.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from .errors import TagWriteError
from .ffprobe import verify_genres
from .genres import split_genre_tag
from .models import BookGroup, FieldChange
from .processed import parse_narrator

log = logger.bind(stage="tagging")

# ffmpeg can't guess the muxer from a ".tmp" suffix
_MUXERS = {
    ".m4b": "ipod",
    ".m4a": "ipod",
    ".mp3": "mp3",
    ".flac": "flac",
    ".ogg": "ogg",
}


@dataclass
class WriteFailure:
    file_id: str
    path: str
    error: str


@dataclass
class WriteResult:
    success: int = 0
    failed: int = 0
    errors: list[WriteFailure] = field(default_factory=list)
    genre_mismatches: list[str] = field(default_factory=list)


def build_tag_map(changes: dict[str, FieldChange]) -> dict[str, str]:
    """Translate a change map into ffmpeg -metadata key/value pairs."""
    tags: dict[str, str] = {}

    for name, change in changes.items():
        value = change.new
        if name == "title":
            tags["title"] = value
        elif name in ("author", "artist"):
            tags["artist"] = value
            tags["album_artist"] = value
        elif name == "genre":
            tags["genre"] = value
        elif name == "narrator":
            tags["composer"] = parse_narrator(value) or value
            tags["comment"] = value
        elif name in ("description", "comment"):
            if "narrator" in changes or "narrated by" in value.lower():
                continue
            tags["comment"] = value
        elif name == "year":
            tags["date"] = value
        elif name == "series":
            tags["series"] = value
            tags["show"] = value
        elif name == "sequence":
            tags["series-part"] = value
        else:
            log.warning(f"Unknown field {name!r} -- not written")

    return tags


def write_file_tags(path: Path, changes: dict[str, FieldChange], backup: bool = False) -> None:
    """Apply a change map to one audio file.

    If backup is set, the original is first copied to "<name>.backup".
    Raises TagWriteError on any failure; the original file is left intact.
    """
    if not path.is_file():
        raise TagWriteError(str(path), "file does not exist")

    tags = build_tag_map(changes)
    if not tags:
        log.debug(f"Nothing to write for {path.name}")
        return

    if backup:
        backup_path = path.with_name(path.name + ".backup")
        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise TagWriteError(str(path), f"backup failed: {e}") from e
        log.info(f"Backup created: {backup_path.name}")

    temp_file = path.with_suffix(path.suffix + ".tmp")
    muxer = _MUXERS.get(path.suffix.lower())

    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        str(path),
        "-map", "0",
        "-c", "copy",
        "-map_chapters", "0",
    ]
    for key, value in tags.items():
        cmd.extend(["-metadata", f"{key}={value}"])
    if muxer == "ipod":
        # Keep non-standard keys (series, series-part) in MP4 containers
        cmd.extend(["-movflags", "use_metadata_tags"])
    if muxer:
        cmd.extend(["-f", muxer])
    cmd.append(str(temp_file))

    log.debug(f"ffmpeg command: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=120)
    except (OSError, subprocess.SubprocessError) as e:
        temp_file.unlink(missing_ok=True)
        raise TagWriteError(str(path), f"ffmpeg failed to run: {e}") from e

    if result.returncode != 0:
        log.error(f"ffmpeg stderr: {result.stderr[-500:]}")
        temp_file.unlink(missing_ok=True)
        raise TagWriteError(str(path), f"ffmpeg exited with {result.returncode}")

    # Atomic replace
    try:
        temp_file.replace(path)
    except OSError as e:
        temp_file.unlink(missing_ok=True)
        raise TagWriteError(str(path), f"failed to replace original: {e}") from e

    log.info(f"Tagged: {path.name} ({', '.join(sorted(changes))})")


def check_genres(path: Path, expected: str) -> bool:
    """Read the genre tag back after a write and compare it to what was written."""
    try:
        actual = verify_genres(path)
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        log.warning(f"Genre check skipped for {path.name}: {e}")
        return False
    wanted = split_genre_tag(expected)
    if actual != wanted:
        log.warning(f"Genre mismatch on {path.name}: wrote {wanted}, read back {actual}")
        return False
    return True


def write_groups(
    groups: list[BookGroup],
    backup: bool = False,
    verify: bool = False,
) -> WriteResult:
    """Write every file that has at least one change. Never raises.

    With verify, files whose genre changed are re-read and any whose genre
    tag does not read back as written are listed in genre_mismatches.
    """
    result = WriteResult()
    for group in groups:
        for file in group.files:
            if not file.changes:
                continue
            try:
                write_file_tags(Path(file.path), file.changes, backup=backup)
            except TagWriteError as e:
                log.error(f"Tag write failed: {e}")
                result.failed += 1
                result.errors.append(WriteFailure(file.id, file.path, e.reason))
                continue
            result.success += 1

            genre = file.changes.get("genre")
            if verify and genre and not check_genres(Path(file.path), genre.new):
                result.genre_mismatches.append(file.path)

    log.info(f"Write complete: {result.success} written, {result.failed} failed")
    return result
