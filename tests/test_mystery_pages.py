"""
Tests for the Wikipedia-backed mystery page.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from paperfolio.dependencies.services import close_clients, get_wikipedia_client
from paperfolio.exceptions import UserNotFoundError
from paperfolio.services.mystery_pages import MEDIAWIKI_URL, MysteryPageService, WikipediaClient

LONG = "x" * 250
SHORT = "A short summary."


def mediawiki(extract):
    return {"query": {"pages": {"1": {"extract": extract}}}}


class TestWikipediaClient:
    async def test_long_rest_summary_wins(self):
        client = WikipediaClient()
        with patch.object(client, "_fetch_json", AsyncMock(return_value={"extract": LONG})) as fetch:
            assert await client.fetch_extract("Ada Lovelace") == LONG
        fetch.assert_awaited_once()

    async def test_underscore_variant_is_tried(self):
        client = WikipediaClient()
        responses = [None, {"extract": LONG}]
        with patch.object(client, "_fetch_json", AsyncMock(side_effect=responses)) as fetch:
            assert await client.fetch_extract("Ada Lovelace") == LONG
        assert fetch.await_args_list[1].args[0].endswith("Ada_Lovelace")

    async def test_mediawiki_preferred_over_short_summary(self):
        client = WikipediaClient()
        responses = [{"extract": SHORT}, {"extract": SHORT}, mediawiki("From the extracts API.")]
        with patch.object(client, "_fetch_json", AsyncMock(side_effect=responses)) as fetch:
            assert await client.fetch_extract("Ada Lovelace") == "From the extracts API."
        assert fetch.await_args_list[2].args[0] == MEDIAWIKI_URL

    async def test_short_summary_as_last_resort(self):
        client = WikipediaClient()
        responses = [{"extract": SHORT}, None, mediawiki("  ")]
        with patch.object(client, "_fetch_json", AsyncMock(side_effect=responses)):
            assert await client.fetch_extract("Ada Lovelace") == SHORT

    async def test_placeholder_when_nothing_found(self):
        client = WikipediaClient()
        with patch.object(client, "_fetch_json", AsyncMock(return_value=None)):
            assert await client.fetch_extract("Nope") == "No summary available for 'Nope'."

    async def test_requests_share_one_session(self):
        response = MagicMock(status=200)
        response.json = AsyncMock(return_value={"extract": LONG})
        http = MagicMock(closed=False)
        http.get.return_value.__aenter__.return_value = response
        http.close = AsyncMock()
        client = WikipediaClient()

        with patch("paperfolio.services.mystery_pages.aiohttp.ClientSession", return_value=http) as factory:
            await client.fetch_extract("Ada Lovelace")
            await client.fetch_extract("Alan Turing")
            await client.close()

        assert factory.call_count == 1
        assert http.get.call_count == 2
        http.close.assert_awaited_once()

    async def test_non_200_is_none(self):
        response = MagicMock(status=404)
        http = MagicMock(closed=False)
        http.get.return_value.__aenter__.return_value = response
        client = WikipediaClient()

        with patch.object(client, "_get_session", AsyncMock(return_value=http)):
            assert await client._fetch_json("https://wiki.test/page") is None

    async def test_closed_session_is_replaced(self):
        client = WikipediaClient()
        first = await client._get_session()
        assert await client._get_session() is first

        await client.close()
        second = await client._get_session()

        assert first.closed
        assert second is not first
        await client.close()

    async def test_shared_client_closed_on_shutdown(self):
        client = get_wikipedia_client()
        assert get_wikipedia_client() is client

        with patch.object(client, "close", AsyncMock()) as close:
            await close_clients()

        close.assert_awaited_once()
        assert get_wikipedia_client() is not client


class TestMysteryPageService:
    @pytest.fixture
    def wikipedia(self):
        client = AsyncMock(spec=WikipediaClient)
        client.fetch_extract.return_value = LONG
        return client

    async def test_create_then_update(self, session, make_user, wikipedia):
        user = await make_user()
        service = MysteryPageService(session, wikipedia)

        created = await service.create_or_update(user.id, "  Ada Lovelace ")
        assert created.title == "Ada Lovelace"
        assert created.content == LONG

        wikipedia.fetch_extract.return_value = SHORT
        updated = await service.create_or_update(user.id, "Alan Turing")

        assert updated.id == created.id
        assert (await service.get(user.id)).content == SHORT

    async def test_unknown_user(self, session, wikipedia):
        with pytest.raises(UserNotFoundError):
            await MysteryPageService(session, wikipedia).create_or_update(404, "Ada Lovelace")
        wikipedia.fetch_extract.assert_not_awaited()

    async def test_no_page_yet(self, session, make_user, wikipedia):
        user = await make_user()
        assert await MysteryPageService(session, wikipedia).get(user.id) is None
