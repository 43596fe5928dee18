"""Tests for ffprobe subprocess wrappers."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from audiobook_tagger.ffprobe import get_tags, inspect_file, read_tag_snapshot, verify_genres


def _mock_result(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr="",
    )


def _tags_json(tags: dict) -> str:
    return json.dumps({"format": {"tags": tags}})


class TestGetTags:
    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_lowercases_keys(self, mock_run):
        mock_run.return_value = _mock_result(_tags_json({"TITLE": "Book", "Artist": "A"}))
        assert get_tags(Path("book.mp3")) == {"title": "Book", "artist": "A"}

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_nonzero_exit_returns_none(self, mock_run):
        mock_run.return_value = _mock_result("", returncode=1)
        assert get_tags(Path("bad.mp3")) is None

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_invalid_json_returns_none(self, mock_run):
        mock_run.return_value = _mock_result("not json")
        assert get_tags(Path("bad.mp3")) is None

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_no_tags_returns_empty_dict(self, mock_run):
        mock_run.return_value = _mock_result(json.dumps({"format": {}}))
        assert get_tags(Path("bare.mp3")) == {}


class TestReadTagSnapshot:
    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_builds_snapshot(self, mock_run):
        mock_run.return_value = _mock_result(_tags_json({
            "title": "Chapter 1",
            "artist": "Mary Pope Osborne",
            "album": "Dinosaurs Before Dark",
            "genre": "Children's",
            "date": "1992",
            "comment": "Narrated by Mary Pope Osborne",
        }))
        snap = read_tag_snapshot(Path("ch1.mp3"))
        assert snap is not None
        assert snap.title == "Chapter 1"
        assert snap.album == "Dinosaurs Before Dark"
        assert snap.year == "1992"
        assert snap.comment == "Narrated by Mary Pope Osborne"

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_unreadable_returns_none(self, mock_run):
        mock_run.return_value = _mock_result("", returncode=1)
        assert read_tag_snapshot(Path("bad.mp3")) is None

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_timeout_returns_none(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ffprobe", timeout=60)
        assert read_tag_snapshot(Path("slow.mp3")) is None

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_missing_binary_returns_none(self, mock_run):
        mock_run.side_effect = FileNotFoundError("ffprobe")
        assert read_tag_snapshot(Path("book.mp3")) is None


FFPROBE_OUTPUT = {
    "streams": [
        {"codec_type": "video", "codec_name": "mjpeg"},
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "44100",
            "tags": {"language": "eng"},
        },
    ],
    "format": {
        "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
        "format_long_name": "QuickTime / MOV",
        "duration": "3723.456000",
        "bit_rate": "64000",
        "tags": {"title": "Dune", "genre": "Science Fiction, Classics", "composer": "Scott Brick"},
    },
}


class TestInspectFile:
    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_reports_properties_and_raw_tags(self, mock_run):
        mock_run.return_value = _mock_result(json.dumps(FFPROBE_OUTPUT))

        info = inspect_file(Path("dune.m4b"))

        cmd = mock_run.call_args.args[0]
        assert "-show_format" in cmd and "-show_streams" in cmd
        assert info.format_name == "QuickTime / MOV"
        assert info.duration_seconds == pytest.approx(3723.456)
        assert info.bitrate == 64000
        assert info.sample_rate == 44100
        assert info.codec == "aac"
        assert info.tags["composer"] == "Scott Brick"
        assert info.stream_tags == {"language": "eng"}

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_missing_properties_are_none(self, mock_run):
        mock_run.return_value = _mock_result(json.dumps({"format": {"format_name": "mp3"}}))
        info = inspect_file(Path("bare.mp3"))
        assert info.format_name == "mp3"
        assert info.duration_seconds is None
        assert info.bitrate is None
        assert info.sample_rate is None
        assert info.tags == {}

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_unreadable_raises(self, mock_run):
        mock_run.return_value = _mock_result("", returncode=1)
        with pytest.raises(ValueError, match="could not read"):
            inspect_file(Path("bad.mp3"))


class TestVerifyGenres:
    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_splits_genre_tag(self, mock_run):
        mock_run.return_value = _mock_result(_tags_json({"GENRE": "Fantasy, Adventure"}))
        assert verify_genres(Path("book.m4b")) == ["Fantasy", "Adventure"]

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_no_genre(self, mock_run):
        mock_run.return_value = _mock_result(_tags_json({"title": "Dune"}))
        assert verify_genres(Path("book.m4b")) == []

    @patch("audiobook_tagger.ffprobe.subprocess.run")
    def test_unreadable_raises(self, mock_run):
        mock_run.return_value = _mock_result("", returncode=1)
        with pytest.raises(ValueError):
            verify_genres(Path("bad.m4b"))
