"""Per-field differences between a file's tags and canonical metadata."""

from .models import (
    AudioFileResult,
    BookMetadata,
    FieldChange,
    FileStatus,
    RawFileRecord,
    TagSnapshot,
)


def compute_changes(tags: TagSnapshot, metadata: BookMetadata) -> dict[str, FieldChange]:
    """Map field name -> FieldChange for title, author, narrator and genre.

    Title and author are only compared when the file has that tag. Narrator
    is rendered as "Narrated by <name>" against the old comment. A field
    whose old and new values are equal is omitted, never set to None.
    """
    changes: dict[str, FieldChange] = {}

    if tags.title is not None and tags.title != metadata.title:
        changes["title"] = FieldChange(old=tags.title, new=metadata.title)

    if tags.artist is not None and tags.artist != metadata.author:
        changes["author"] = FieldChange(old=tags.artist, new=metadata.author)

    if metadata.narrator:
        old = tags.comment or ""
        new = f"Narrated by {metadata.narrator}"
        if old != new:
            changes["narrator"] = FieldChange(old=old, new=new)

    if metadata.genres:
        old = tags.genre or ""
        new = ", ".join(metadata.genres)
        if old != new:
            changes["genre"] = FieldChange(old=old, new=new)

    return changes


def build_file_result(record: RawFileRecord, metadata: BookMetadata) -> AudioFileResult:
    changes = compute_changes(record.tags, metadata)
    return AudioFileResult(
        id=record.id,
        path=record.path,
        filename=record.filename,
        status=FileStatus.CHANGED if changes else FileStatus.UNCHANGED,
        changes=changes,
    )


def unchanged_file_result(record: RawFileRecord) -> AudioFileResult:
    return AudioFileResult(
        id=record.id,
        path=record.path,
        filename=record.filename,
        status=FileStatus.UNCHANGED,
    )
