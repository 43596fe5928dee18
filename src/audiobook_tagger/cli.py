"""CLI entry point for the audiobook tagger."""

import json
import os
import signal
import subprocess
from dataclasses import asdict
from pathlib import Path

import click
from loguru import logger

from .ai import LLMService
from .api.audiobookshelf import AbsClient, PushItem
from .cache import MetadataCache
from .config import TaggerConfig
from .errors import ConfigError, LibraryError, ScanError
from .ffprobe import inspect_file
from .genres import clear_unused_genres, normalize_library_genres
from .models import BookGroup, ScanProgress
from .scanner import CancelToken, Scanner
from .tagging import write_groups

log = logger.bind(stage="cli")


def _find_config_file() -> Path | None:
    """Look for .env next to the package or in cwd."""
    pkg_dir = Path(__file__).resolve().parent
    for candidate in [
        pkg_dir.parent.parent / ".env",  # dev: src/../.env
        Path.cwd() / ".env",
    ]:
        if candidate.is_file():
            return candidate
    return None


def _load_env_file(env_file: Path) -> None:
    """Load a shell-style .env file into os.environ (without overriding)."""
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if (value.startswith('"') and value.endswith('"')) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]
        # Skip bash variable expansions like ${VAR:-default}
        if "${" in value:
            continue
        # Don't override existing env vars (CLI > env > file)
        if key not in os.environ:
            os.environ[key] = value


def _make_config(ctx: click.Context, **overrides) -> TaggerConfig:
    """Build TaggerConfig from group-level flags plus per-command overrides."""
    kwargs = dict(ctx.obj or {})
    kwargs.update({k: v for k, v in overrides.items() if v is not None})
    if kwargs.get("verbose"):
        kwargs["log_level"] = "DEBUG"
    config = TaggerConfig(**kwargs)
    config.setup_logging()
    return config


def _load_groups(groups_json: str) -> list[BookGroup]:
    try:
        data = json.loads(Path(groups_json).read_text(encoding="utf-8"))
        return [BookGroup.from_dict(g) for g in data]
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise click.ClickException(f"Cannot read scan results from {groups_json}: {e}")


def _abs_client(config: TaggerConfig) -> AbsClient:
    try:
        return AbsClient.from_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e))


def _echo_progress(p: ScanProgress) -> None:
    click.echo(
        f"  [{p.current}/{p.total}] {p.current_book} "
        f"({p.cached_hits} cached, ~{p.estimated_remaining_seconds}s left)",
        err=True,
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    default=None,
    help="Path to .env file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_file: str | None) -> None:
    """Resolve and apply canonical metadata for audiobook collections."""
    # Load .env into environment before TaggerConfig reads env vars
    env_file = Path(config_file) if config_file else _find_config_file()
    if env_file and env_file.is_file():
        _load_env_file(env_file)
        log.debug(f"Loaded env from {env_file}")

    ctx.obj = {"verbose": True} if verbose else {}


@main.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write scan results to this JSON file instead of stdout.",
)
@click.option("-w", "--workers", type=click.IntRange(min=1), default=None,
              help="Groups resolved in parallel (1 = sequential).")
@click.option("--no-cache", is_flag=True, help="Ignore and don't update the metadata cache.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def scan(
    ctx: click.Context,
    root: str,
    output: str | None,
    workers: int | None,
    no_cache: bool,
    verbose: bool,
) -> None:
    """Scan ROOT and propose tag changes per file (JSON)."""
    config = _make_config(ctx, max_workers=workers, verbose=verbose or None)

    cache = None if no_cache else MetadataCache(config.cache_path)
    scanner = Scanner(config, cache=cache, llm=LLMService.from_config(config))

    # Ctrl-C stops new groups from starting; finished groups are still emitted
    cancel = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())
    try:
        groups = scanner.scan(Path(root).resolve(), cancel=cancel, on_progress=_echo_progress)
    except ScanError as e:
        raise click.ClickException(str(e))
    finally:
        signal.signal(signal.SIGINT, previous)

    payload = json.dumps([g.to_dict() for g in groups], indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(payload + "\n", encoding="utf-8")
        click.echo(f"Wrote {len(groups)} books to {output}", err=True)
    else:
        click.echo(payload)

    changed = sum(g.total_changes for g in groups)
    click.echo(f"{len(groups)} books, {changed} files with changes", err=True)


@main.command()
@click.argument("groups_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--backup/--no-backup", default=None,
              help="Copy each file to <name>.backup before writing.")
@click.option("--dry-run", is_flag=True, help="Show what would be written without doing it.")
@click.option("--verify", is_flag=True, help="Read genres back after writing and report mismatches.")
@click.pass_context
def write(
    ctx: click.Context,
    groups_json: str,
    backup: bool | None,
    dry_run: bool,
    verify: bool,
) -> None:
    """Write the changes from a scan result file into the audio files."""
    config = _make_config(ctx, dry_run=dry_run or None)
    groups = _load_groups(groups_json)

    if config.dry_run:
        for group in groups:
            for file in group.files:
                for name, change in file.changes.items():
                    click.echo(f"  {file.filename}: {name} {change.old!r} -> {change.new!r}")
        click.echo("Dry run -- nothing written.")
        return

    result = write_groups(
        groups,
        backup=config.backup_tags if backup is None else backup,
        verify=verify,
    )
    click.echo(f"Written: {result.success}, failed: {result.failed}")
    for err in result.errors:
        click.echo(f"  FAILED {err.path}: {err.error}")
    for path in result.genre_mismatches:
        click.echo(f"  GENRE MISMATCH {path}")
    if result.failed:
        ctx.exit(1)


@main.command()
@click.argument("groups_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--rescan", is_flag=True, help="Trigger a library rescan after pushing.")
@click.pass_context
def push(ctx: click.Context, groups_json: str, rescan: bool) -> None:
    """Push resolved metadata from a scan result file to AudiobookShelf."""
    config = _make_config(ctx)
    groups = _load_groups(groups_json)
    items = [PushItem(path=f.path, metadata=g.metadata) for g in groups for f in g.files]

    with _abs_client(config) as client:
        try:
            result = client.push_updates(items)
            if rescan:
                client.rescan()
        except LibraryError as e:
            raise click.ClickException(str(e))

    click.echo(
        f"Updated: {result.updated}, unmatched: {len(result.unmatched)}, "
        f"failed: {len(result.failed)}"
    )
    for path in result.unmatched:
        click.echo(f"  UNMATCHED {path}")
    for failure in result.failed:
        click.echo(f"  FAILED {failure.path}: {failure.reason}")
    if rescan:
        click.echo("Library rescan triggered")


@main.command("normalize-genres")
@click.pass_context
def normalize_genres_cmd(ctx: click.Context) -> None:
    """Map every library item's genres onto the approved taxonomy."""
    config = _make_config(ctx)
    with _abs_client(config) as client:
        try:
            result = normalize_library_genres(client)
        except LibraryError as e:
            raise click.ClickException(str(e))
    click.echo(result.summary())
    for failure in result.failures:
        click.echo(f"  FAILED {failure}")


@main.command("clear-unused-genres")
@click.pass_context
def clear_unused_genres_cmd(ctx: click.Context) -> None:
    """Delete genres that no library item uses any more."""
    config = _make_config(ctx)
    with _abs_client(config) as client:
        try:
            removed = clear_unused_genres(client)
        except LibraryError as e:
            raise click.ClickException(str(e))
    click.echo(f"Removed {len(removed)} unused genres")
    for genre in removed:
        click.echo(f"  {genre}")


@main.command("clear-cache")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Delete the metadata cache."""
    config = _make_config(ctx)
    MetadataCache(config.cache_path).clear()
    click.echo(f"Cleared {config.cache_path}")


@main.command("rescan")
@click.pass_context
def rescan_cmd(ctx: click.Context) -> None:
    """Ask AudiobookShelf to rescan the library for changed files."""
    config = _make_config(ctx)
    with _abs_client(config) as client:
        try:
            client.rescan()
        except LibraryError as e:
            raise click.ClickException(str(e))
    click.echo("Library rescan triggered")


@main.command("inspect")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the raw inspection as JSON.")
@click.pass_context
def inspect_cmd(ctx: click.Context, file: str, as_json: bool) -> None:
    """Dump every tag and the audio properties of FILE."""
    _make_config(ctx)
    try:
        info = inspect_file(Path(file))
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        raise click.ClickException(f"Cannot inspect {file}: {e}")

    if as_json:
        click.echo(json.dumps(asdict(info), indent=2, ensure_ascii=False))
        return

    duration = f"{info.duration_seconds:.0f}s" if info.duration_seconds is not None else "?"
    bitrate = f"{info.bitrate // 1000} kb/s" if info.bitrate else "?"
    sample_rate = f"{info.sample_rate} Hz" if info.sample_rate else "?"
    click.echo(f"{info.path}")
    click.echo(f"  Format: {info.format_name} ({info.codec or '?'})")
    click.echo(f"  Duration: {duration}, bitrate: {bitrate}, sample rate: {sample_rate}")
    for label, tags in (("Tags", info.tags), ("Stream tags", info.stream_tags)):
        if not tags:
            continue
        click.echo(f"  {label}:")
        for key, value in tags.items():
            click.echo(f"    {key}: {value}")
