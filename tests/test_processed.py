"""Tests for processed.py -- detecting files this tool already tagged."""

from audiobook_tagger.models import TagSnapshot
from audiobook_tagger.processed import (
    is_already_processed,
    metadata_from_tags,
    parse_narrator,
)


class TestIsAlreadyProcessed:
    def test_narrator_and_approved_genres(self):
        tags = TagSnapshot(comment="Narrated by Jane Doe", genre="Fantasy, Adventure")
        assert is_already_processed(tags)

    def test_read_by_marker(self):
        tags = TagSnapshot(comment="Read by Jim Dale", genre="Children's")
        assert is_already_processed(tags)

    def test_no_approved_genre(self):
        tags = TagSnapshot(comment="Narrated by Jane Doe", genre="Audiobook, Unabridged")
        assert not is_already_processed(tags)

    def test_too_many_genres(self):
        tags = TagSnapshot(
            comment="Narrated by Jane Doe",
            genre="Fantasy, Adventure, Humor, Fiction",
        )
        assert not is_already_processed(tags)

    def test_no_narrator_marker(self):
        tags = TagSnapshot(comment="A great story", genre="Fantasy")
        assert not is_already_processed(tags)

    def test_missing_genre(self):
        assert not is_already_processed(TagSnapshot(comment="Narrated by Jane Doe"))

    def test_empty_snapshot(self):
        assert not is_already_processed(TagSnapshot.empty())


class TestParseNarrator:
    def test_strips_marker(self):
        assert parse_narrator("Narrated by Jane Doe") == "Jane Doe"
        assert parse_narrator("Read by Jim Dale") == "Jim Dale"

    def test_no_marker(self):
        assert parse_narrator("Some description") is None
        assert parse_narrator(None) is None


class TestMetadataFromTags:
    def test_builds_from_tags(self):
        tags = TagSnapshot(
            title="The Hobbit",
            artist="J.R.R. Tolkien",
            comment="Narrated by Andy Serkis",
            genre="Fantasy, Classics",
            year="2020",
        )
        meta = metadata_from_tags(tags, "Folder Name")
        assert meta.title == "The Hobbit"
        assert meta.author == "J.R.R. Tolkien"
        assert meta.narrator == "Andy Serkis"
        assert meta.genres == ["Fantasy", "Classics"]
        assert meta.year == "2020"

    def test_fallbacks(self):
        meta = metadata_from_tags(TagSnapshot.empty(), "Folder Name")
        assert meta.title == "Folder Name"
        assert meta.author == "Unknown"
        assert meta.narrator is None
        assert meta.genres == []
