"""
Paperfolio Mystery Page Service
A user's profile page holding a Wikipedia summary of a chosen title.
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paperfolio.database.models import MysteryPage, User
from paperfolio.exceptions import UserNotFoundError

logger = logging.getLogger(__name__)

SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/"
MEDIAWIKI_URL = "https://en.wikipedia.org/w/api.php"
MIN_PREFERRED_LENGTH = 200
USER_AGENT = "Paperfolio-Backend/1.0"


class WikipediaClient:
    """Fetch plain-text extracts, falling back through several endpoints."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """GET a JSON document; None on any HTTP or transport failure."""
        try:
            session = await self._get_session()
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    logger.debug(f"Wikipedia {url} -> {response.status}")
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Wikipedia request to {url} failed: {e}")
            return None

    async def fetch_extract(self, title: str) -> str:
        """
        Summary text for a title.

        Prefers a REST summary longer than 200 characters (title as given, then
        with underscores), then the MediaWiki extracts API, then any shorter
        REST summary, then a placeholder.
        """
        candidate = None

        for variant in (title, title.replace(" ", "_")):
            data = await self._fetch_json(SUMMARY_URL + quote(variant, safe=""))
            extract = (data or {}).get("extract")
            if isinstance(extract, str) and extract.strip():
                if len(extract) > MIN_PREFERRED_LENGTH:
                    return extract
                candidate = candidate or extract

        data = await self._fetch_json(MEDIAWIKI_URL, {
            "action": "query",
            "prop": "extracts",
            "explaintext": "true",
            "format": "json",
            "exchars": "2000",
            "titles": title,
        })
        pages = ((data or {}).get("query") or {}).get("pages") or {}
        for page in pages.values():
            extract = page.get("extract") if isinstance(page, dict) else None
            if isinstance(extract, str) and extract.strip():
                return extract

        if candidate:
            return candidate
        return f"No summary available for '{title}'."


class MysteryPageService:
    def __init__(self, session: AsyncSession, wikipedia: Optional[WikipediaClient] = None):
        self.session = session
        self.wikipedia = wikipedia or WikipediaClient()

    async def get(self, user_id: int) -> Optional[MysteryPage]:
        result = await self.session.execute(select(MysteryPage).where(MysteryPage.user_id == user_id))
        return result.scalar_one_or_none()

    async def create_or_update(self, user_id: int, title: str) -> MysteryPage:
        if await self.session.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        title = title.strip()
        content = await self.wikipedia.fetch_extract(title)

        page = await self.get(user_id)
        if page is None:
            page = MysteryPage(user_id=user_id)
            self.session.add(page)

        page.title = title
        page.content = content
        await self.session.flush()
        logger.info(f"Mystery page for user {user_id} set to '{title}'")
        return page
