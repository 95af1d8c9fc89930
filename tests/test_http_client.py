"""
Tests for the adapter HTTP helper, using aioresponses to fake upstream APIs.
"""
import pytest
from aiohttp import ClientConnectionError

from booksource.internal.http_client import fetch_json
from booksource.internal.schemas import CoverImage

OPEN_LIBRARY_URL = "https://openlibrary.org/isbn/9780441013593.json"


@pytest.mark.asyncio
class TestFetchJson:
    async def test_returns_decoded_body(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, payload={"title": "Dune", "number_of_pages": 896})

        data = await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library")

        assert data == {"title": "Dune", "number_of_pages": 896}

    async def test_query_params_and_headers_sent(self, mock_client_session):
        url = "https://api2.isbndb.com/books/dune"
        mock_client_session._mocked.get(f"{url}?page=1&pageSize=20", payload={"books": []})

        data = await fetch_json(
            mock_client_session,
            url,
            provider="isbndb",
            params={"page": 1, "pageSize": 20},
            headers={"Authorization": "test-key"},
        )

        assert data == {"books": []}
        requests = list(mock_client_session._mocked.requests.values())[0]
        assert requests[0].kwargs["headers"] == {"Authorization": "test-key"}

    async def test_validates_into_model(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, payload={"url": "https://covers.openlibrary.org/b/id/1-L.jpg"})

        cover = await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library", model=CoverImage)

        assert isinstance(cover, CoverImage)
        assert cover.size == "large"

    async def test_invalid_model_payload_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, payload={"width": 300})

        cover = await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library", model=CoverImage)

        assert cover is None

    async def test_non_200_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, status=404)

        assert await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library") is None

    async def test_rate_limited_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, status=429, payload={"error": "slow down"})

        assert await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library") is None

    async def test_unparsable_body_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, body="<html>maintenance</html>")

        assert await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library") is None

    async def test_connection_error_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, exception=ClientConnectionError("reset by peer"))

        assert await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library") is None

    async def test_timeout_is_none(self, mock_client_session):
        mock_client_session._mocked.get(OPEN_LIBRARY_URL, exception=TimeoutError())

        assert await fetch_json(mock_client_session, OPEN_LIBRARY_URL, provider="open-library", timeout=1) is None
