"""Tests for api/google_books.py -- volume search with mocked HTTP."""

from unittest.mock import MagicMock, patch

import httpx

from audiobook_tagger.api.google_books import API_URL, _extract_isbn, fetch_from_google_books


def _response(payload: dict) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


VOLUMES = {
    "items": [
        {
            "volumeInfo": {
                "title": "Dinosaurs Before Dark",
                "authors": ["Mary Pope Osborne"],
                "publisher": "Random House Books for Young Readers",
                "publishedDate": "1992-07-28",
                "description": "Jack and Annie find a tree house.",
                "industryIdentifiers": [
                    {"type": "ISBN_10", "identifier": "0679824111"},
                    {"type": "ISBN_13", "identifier": "9780679824114"},
                ],
                "categories": ["Juvenile Fiction / Fantasy & Magic"],
            },
        },
        {"volumeInfo": {"title": "Dinosaur Facts", "authors": ["Other"]}},
    ],
}


class TestFetchFromGoogleBooks:
    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_parses_best_volume(self, mock_get):
        mock_get.return_value = _response(VOLUMES)
        meta = fetch_from_google_books("Dinosaurs Before Dark", "Mary Pope Osborne")

        assert meta is not None
        assert meta.title == "Dinosaurs Before Dark"
        assert meta.publish_date == "1992-07-28"
        assert meta.isbn == "9780679824114"
        assert meta.genres == ["Children's", "Fantasy"]

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_query_params(self, mock_get):
        mock_get.return_value = _response({"items": []})
        fetch_from_google_books("Dune", "Frank Herbert", api_key="k")

        assert mock_get.call_args.args[0] == API_URL
        params = mock_get.call_args.kwargs["params"]
        assert params["q"] == "intitle:Dune inauthor:Frank Herbert"
        assert params["key"] == "k"

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_unknown_author_omitted(self, mock_get):
        mock_get.return_value = _response({"items": []})
        fetch_from_google_books("Dune", "Unknown")
        params = mock_get.call_args.kwargs["params"]
        assert params["q"] == "intitle:Dune"
        assert "key" not in params

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_no_items_returns_none(self, mock_get):
        mock_get.return_value = _response({"totalItems": 0})
        assert fetch_from_google_books("Nothing", "Nobody") is None

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_http_error_returns_none(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("connection refused")
        assert fetch_from_google_books("Dune", "Frank Herbert") is None

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_bad_json_returns_none(self, mock_get):
        resp = MagicMock()
        resp.raise_for_status.return_value = None
        resp.json.side_effect = ValueError("not json")
        mock_get.return_value = resp
        assert fetch_from_google_books("Dune", "Frank Herbert") is None

    def test_empty_query_skips_request(self):
        with patch("audiobook_tagger.api.google_books.httpx.get") as mock_get:
            assert fetch_from_google_books("", "") is None
        mock_get.assert_not_called()

    @patch("audiobook_tagger.api.google_books.httpx.get")
    def test_non_object_body_returns_none(self, mock_get):
        mock_get.return_value = _response(["unexpected"])
        assert fetch_from_google_books("Dune", "Frank Herbert") is None


class TestExtractIsbn:
    def test_prefers_isbn13(self):
        ids = [
            {"type": "ISBN_10", "identifier": "0679824111"},
            {"type": "ISBN_13", "identifier": "9780679824114"},
        ]
        assert _extract_isbn(ids) == "9780679824114"

    def test_falls_back_to_isbn10(self):
        assert _extract_isbn([{"type": "ISBN_10", "identifier": "0679824111"}]) == "0679824111"

    def test_none(self):
        assert _extract_isbn([{"type": "OTHER", "identifier": "x"}]) is None
