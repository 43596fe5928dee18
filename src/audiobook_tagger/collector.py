"""Audio file discovery -- walk a root directory into RawFileRecords."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from .errors import ScanError
from .ffprobe import read_tag_snapshot
from .models import AUDIO_EXTENSIONS, RawFileRecord, TagSnapshot

log = logger.bind(stage="collect")

TagReader = Callable[[Path], TagSnapshot | None]


def _is_hidden(filename: str) -> bool:
    # Covers ._ AppleDouble sidecars and .DS_Store
    return filename.startswith(".")


def collect_audio_files(
    root: Path,
    reader: TagReader = read_tag_snapshot,
) -> list[RawFileRecord]:
    """Recursively collect audio files under root, following symlinks.

    Unreadable tags yield an empty snapshot rather than an error. Order is
    filesystem traversal order -- callers must not rely on it.

    Raises ScanError if root is not a directory.
    """
    if not root.is_dir():
        raise ScanError(f"Not a directory: {root}")

    records: list[RawFileRecord] = []
    seen_dirs: set[str] = set()

    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        real = os.path.realpath(dirpath)
        if real in seen_dirs:
            # Symlink cycle -- don't descend again
            dirnames.clear()
            continue
        seen_dirs.add(real)

        for name in filenames:
            if _is_hidden(name):
                continue
            path = Path(dirpath) / name
            if path.suffix.lower() not in AUDIO_EXTENSIONS:
                continue
            if not path.is_file():
                continue

            try:
                tags = reader(path)
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                log.warning(f"Tag read failed for {name}: {e}")
                tags = None

            records.append(
                RawFileRecord(
                    path=str(path.absolute()),
                    filename=name,
                    tags=tags if tags is not None else TagSnapshot.empty(),
                )
            )

    log.info(f"Collected {len(records)} audio files under {root}")
    return records
