"""Tests for api/search.py -- ranking catalog candidates."""

from audiobook_tagger.api.search import (
    author_similarity,
    best_match,
    score_results,
    title_similarity,
)

MTH = {"asin": "B002", "title": "Dinosaurs Before Dark", "authors": ["Mary Pope Osborne"]}


class TestScoreResults:
    def test_exact_match_scores_full_marks(self):
        (scored,) = score_results([MTH], "Dinosaurs Before Dark", "Mary Pope Osborne")
        assert scored["score"] == 100.0

    def test_title_only_when_author_missing(self):
        (scored,) = score_results([MTH], "Dinosaurs Before Dark", "")
        # 60 title + 0 author + 10 position
        assert scored["score"] == 70.0

    def test_unknown_author_scores_like_missing(self):
        with_unknown = score_results([MTH], "Dinosaurs Before Dark", "Unknown")
        without = score_results([MTH], "Dinosaurs Before Dark", "")
        assert with_unknown[0]["score"] == without[0]["score"]

    def test_best_first(self):
        results = [
            {"asin": "B001", "title": "Completely Different", "authors": ["Nobody"]},
            MTH,
        ]
        scored = score_results(results, "Dinosaurs Before Dark", "Mary Pope Osborne")
        assert [r["asin"] for r in scored] == ["B002", "B001"]

    def test_ties_keep_catalog_order(self):
        results = [
            {"asin": "first", "title": "Dune", "authors": ["Frank Herbert"]},
            {"asin": "second", "title": "Dune", "authors": ["Frank Herbert"]},
        ]
        scored = score_results(results, "Dune", "Frank Herbert")
        assert scored[0]["asin"] == "first"

    def test_input_not_mutated(self):
        results = [dict(MTH)]
        score_results(results, "Dinosaurs Before Dark", "")
        assert "score" not in results[0]

    def test_empty(self):
        assert score_results([], "Dune", "Frank Herbert") == []


class TestSimilarity:
    def test_subtitle_ignored(self):
        assert title_similarity("Dune", "Dune: Deluxe Edition") == 100

    def test_case_and_spacing_ignored(self):
        assert title_similarity("the  hobbit", "The Hobbit") == 100

    def test_author_best_of_list(self):
        assert author_similarity("Terry Pratchett", ["Neil Gaiman", "Terry Pratchett"]) == 100

    def test_author_no_authors(self):
        assert author_similarity("Frank Herbert", []) == 0.0


class TestBestMatch:
    def test_returns_top_candidate(self):
        other = {"asin": "B009", "title": "Dinosaur Facts", "authors": ["Other"]}
        best = best_match([other, MTH], "Dinosaurs Before Dark", "Mary Pope Osborne")
        assert best["asin"] == "B002"

    def test_none_for_empty(self):
        assert best_match([], "Dune", "Frank Herbert") is None
