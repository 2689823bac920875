"""Unit tests for the HTTP catalog source."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from catalog_sync.errors import PageFetchError
from catalog_sync.ingestion.source import HttpCatalogSource


def _response(payload=None, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


@pytest.fixture()
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def source(session: MagicMock) -> HttpCatalogSource:
    return HttpCatalogSource("http://catalog/", timeout=5, session=session)


class TestFetchPage:
    def test_maps_page_payload(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response({"total": 25, "pages": 3, "list": [{"id": 1}, {"id": 2}]})
        page = source.fetch_page(2, 10, sort_by="id", ascending=False)

        assert [item["id"] for item in page.items] == [1, 2]
        assert (page.total_items, page.total_pages) == (25, 3)
        session.get.assert_called_once_with(
            "http://catalog/items/page",
            params={"pageNo": 2, "pageSize": 10, "isAsc": "false", "sortBy": "id"},
            timeout=5,
        )

    def test_missing_list_is_an_empty_page(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response({"total": 0})
        assert source.fetch_page(1, 10).is_empty

    def test_non_dict_entries_are_dropped(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response({"list": [{"id": 1}, "junk", None]})
        assert source.fetch_page(1, 10).items == [{"id": 1}]

    def test_http_error_raises_page_fetch_error(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response({}, status=502)
        with pytest.raises(PageFetchError):
            source.fetch_page(1, 10)

    def test_connection_error_raises_page_fetch_error(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(PageFetchError):
            source.fetch_page(1, 10)


class TestFetchById:
    def test_found(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response({"id": 7, "name": "X"})
        assert source.fetch_by_id(7) == {"id": 7, "name": "X"}
        assert session.get.call_args.args[0] == "http://catalog/items/7"

    def test_not_found_is_none(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response(None, status=404)
        assert source.fetch_by_id(7) is None

    def test_empty_body_is_none(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.get.return_value = _response(None)
        assert source.fetch_by_id(7) is None


class TestFetchByIds:
    def test_posts_id_list(self, source: HttpCatalogSource, session: MagicMock) -> None:
        session.post.return_value = _response([{"id": 1}, {"id": 2}])
        assert source.fetch_by_ids([1, 2]) == [{"id": 1}, {"id": 2}]
        session.post.assert_called_once_with("http://catalog/items/batch", json=[1, 2], timeout=5)

    def test_empty_ids_skip_the_request(self, source: HttpCatalogSource, session: MagicMock) -> None:
        assert source.fetch_by_ids([]) == []
        session.post.assert_not_called()
