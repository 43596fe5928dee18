"""Tests for cache.py -- file-backed metadata cache."""

import json
import threading

from audiobook_tagger.cache import MetadataCache, normalize_key
from audiobook_tagger.models import BookMetadata


def _meta(**overrides) -> BookMetadata:
    fields = {
        "title": "Dinosaurs Before Dark",
        "author": "Mary Pope Osborne",
        "narrator": "Mary Pope Osborne",
        "series": "Magic Tree House",
        "sequence": "1",
        "genres": ["Children's", "Adventure"],
        "year": "1992",
    }
    fields.update(overrides)
    return BookMetadata(**fields)


class TestNormalizeKey:
    def test_case_and_whitespace_insensitive(self):
        assert normalize_key("  The  Hobbit ", "J.R.R. TOLKIEN") == normalize_key(
            "the hobbit", "j.r.r. tolkien"
        )

    def test_separator(self):
        assert normalize_key("A", "B") == "a||b"

    def test_nfkc(self):
        # Fullwidth letters fold to ASCII
        assert normalize_key("Ｄｕｎｅ", "Frank Herbert") == "dune||frank herbert"


class TestStoreLookup:
    def test_store_then_lookup_returns_equal(self, tmp_path):
        cache = MetadataCache(tmp_path / "cache.json")
        meta = _meta()
        cache.store("Dinosaurs Before Dark", "Mary Pope Osborne", meta)
        assert cache.lookup("Dinosaurs Before Dark", "Mary Pope Osborne") == meta

    def test_lookup_is_normalized(self, tmp_path):
        cache = MetadataCache(tmp_path / "cache.json")
        cache.store("Dinosaurs Before Dark", "Mary Pope Osborne", _meta())
        assert cache.lookup("dinosaurs  before dark", "MARY POPE OSBORNE") is not None

    def test_miss_returns_none(self, tmp_path):
        cache = MetadataCache(tmp_path / "cache.json")
        assert cache.lookup("Unknown Book", "Nobody") is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "cache.json"
        MetadataCache(path).store("Dune", "Frank Herbert", _meta(title="Dune"))
        restored = MetadataCache(path).lookup("Dune", "Frank Herbert")
        assert restored is not None
        assert restored.title == "Dune"

    def test_file_schema(self, tmp_path):
        path = tmp_path / "cache.json"
        MetadataCache(path).store("Dune", "Frank Herbert", _meta(title="Dune"))
        data = json.loads(path.read_text())
        entry = data["dune||frank herbert"]
        assert entry["final_metadata"]["title"] == "Dune"
        assert isinstance(entry["timestamp"], int)

    def test_store_replaces_wholesale(self, tmp_path):
        cache = MetadataCache(tmp_path / "cache.json")
        cache.store("Dune", "Frank Herbert", _meta(narrator="A"))
        cache.store("Dune", "Frank Herbert", _meta(narrator=None, genres=[]))
        restored = cache.lookup("Dune", "Frank Herbert")
        assert restored.narrator is None
        assert restored.genres == []
        assert len(cache) == 1

    def test_contains(self, tmp_path):
        cache = MetadataCache(tmp_path / "cache.json")
        cache.store("Dune", "Frank Herbert", _meta())
        assert ("DUNE", "frank herbert") in cache
        assert ("Dune Messiah", "Frank Herbert") not in cache

    def test_concurrent_stores_keep_all_entries(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = MetadataCache(path)
        threads = [
            threading.Thread(
                target=cache.store, args=(f"Book {i}", "Author", _meta(title=f"Book {i}"))
            )
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(MetadataCache(path)) == 20


class TestErrors:
    def test_corrupt_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        cache = MetadataCache(path)
        assert cache.lookup("Dune", "Frank Herbert") is None
        assert len(cache) == 0

    def test_non_object_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("[1, 2, 3]")
        assert len(MetadataCache(path)) == 0

    def test_malformed_entry_skipped(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"dune||frank herbert": {"timestamp": 1}}))
        assert MetadataCache(path).lookup("Dune", "Frank Herbert") is None

    def test_unwritable_location_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        cache = MetadataCache(blocker / "cache.json")
        cache.store("Dune", "Frank Herbert", _meta())
        # In-memory state still serves the entry
        assert cache.lookup("Dune", "Frank Herbert") is not None


class TestClear:
    def test_clear_removes_file_and_entries(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = MetadataCache(path)
        cache.store("Dune", "Frank Herbert", _meta())
        cache.clear()
        assert not path.exists()
        assert cache.lookup("Dune", "Frank Herbert") is None
        assert len(cache) == 0

    def test_clear_missing_file(self, tmp_path):
        MetadataCache(tmp_path / "nothing.json").clear()
