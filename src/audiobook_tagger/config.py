"""Tagger configuration via pydantic-settings (.env + env vars)."""

import sys
from pathlib import Path

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaggerConfig(BaseSettings):
    """All tagger configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -- Directories --
    log_dir: Path = Path.home() / ".local/state/audiobook-tagger"
    cache_path: Path = Path.home() / ".cache/audiobook-tagger/metadata_cache.json"

    # -- Behavior --
    dry_run: bool = False
    verbose: bool = False
    log_level: str = "INFO"
    backup_tags: bool = True

    # -- Scan --
    max_workers: int = 4  # 1 = strictly sequential
    max_merge_attempts: int = 3
    quality_threshold: int = 80

    # -- AI (uses PIPELINE_LLM_* env vars to avoid OPENAI_* collisions) --
    pipeline_llm_base_url: str = ""
    pipeline_llm_api_key: str = ""
    pipeline_llm_model: str = "gpt-4o-mini"

    # -- Metadata sources --
    audible_enabled: bool = False
    audible_cli_path: str = ""
    google_books_api_key: str = ""

    # -- AudiobookShelf --
    abs_base_url: str = ""
    abs_api_token: str = ""
    abs_library_id: str = ""

    @property
    def has_llm(self) -> bool:
        return bool(self.pipeline_llm_base_url or self.pipeline_llm_api_key)

    @property
    def has_audible(self) -> bool:
        return self.audible_enabled and bool(self.audible_cli_path.strip())

    @property
    def has_abs(self) -> bool:
        return all(
            v.strip()
            for v in (self.abs_base_url, self.abs_api_token, self.abs_library_id)
        )

    def setup_logging(self) -> None:
        """Configure loguru for the tagger."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<10} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        logger.add(
            sys.stderr,
            format=log_format,
            level=self.log_level.upper(),
            filter=_default_extra,
        )

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "tagger.log"),
            format=log_format,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
