"""Tests for loguru-based tagger logging."""

from loguru import logger

from audiobook_tagger.config import TaggerConfig


class TestSetupLogging:
    def setup_method(self):
        logger.remove()

    def teardown_method(self):
        logger.remove()

    def test_setup_creates_log_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LOG_DIR", raising=False)
        log_dir = tmp_path / "logs"
        config = TaggerConfig(_env_file=None, log_dir=log_dir)
        config.setup_logging()
        assert log_dir.exists()

    def test_setup_adds_file_sink(self, tmp_path):
        log_dir = tmp_path / "logs"
        config = TaggerConfig(_env_file=None, log_dir=log_dir)
        config.setup_logging()
        logger.bind(stage="test").info("hello from test")
        log_file = log_dir / "tagger.log"
        assert log_file.exists()
        assert "hello from test" in log_file.read_text()

    def test_stage_context_in_output(self, tmp_path):
        log_dir = tmp_path / "logs"
        config = TaggerConfig(_env_file=None, log_dir=log_dir)
        config.setup_logging()
        logger.bind(stage="merge").info("merging")
        content = (log_dir / "tagger.log").read_text()
        assert "merge" in content

    def test_default_stage_empty(self, tmp_path):
        log_dir = tmp_path / "logs"
        config = TaggerConfig(_env_file=None, log_dir=log_dir)
        config.setup_logging()
        logger.info("no stage bound")
        content = (log_dir / "tagger.log").read_text()
        assert "no stage bound" in content

    def test_debug_always_in_file(self, tmp_path):
        log_dir = tmp_path / "logs"
        config = TaggerConfig(_env_file=None, log_dir=log_dir, log_level="WARNING")
        config.setup_logging()
        logger.bind(stage="scan").debug("debug detail")
        assert "debug detail" in (log_dir / "tagger.log").read_text()
