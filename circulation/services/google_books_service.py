import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from circulation.config import settings
from circulation.exceptions import GoogleBooksAPIError, RateLimitExceeded, ValidationFailure
from circulation.models import Book

logger = logging.getLogger(__name__)


def _first(values: Any) -> Optional[Any]:
    if isinstance(values, list) and values:
        return values[0]
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class GoogleBooksService:
    """Service for searching the Google Books catalogue"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.google_books_api_key
        self.base_url = (base_url or settings.google_books_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.google_books_timeout
        self._transport = transport

    def is_available(self) -> bool:
        """Check if Google Books service is enabled"""
        return settings.enable_google_books

    async def search(self, query: str) -> List[Book]:
        """Search volumes by free text and map them to unsaved Book records.

        Malformed entries are skipped; a failed request raises GoogleBooksAPIError.
        """
        if not query or not query.strip():
            raise ValidationFailure("Search query cannot be empty.")

        payload = await self._make_api_request("volumes", {"q": query.strip()})
        items = payload.get("items") or []
        if not isinstance(items, list):
            raise GoogleBooksAPIError("Unexpected Google Books payload: 'items' is not a list")

        books = []
        for item in items:
            book = self._parse_volume(item)
            if book is not None:
                books.append(book)
        logger.info(f"Google Books search '{query}' returned {len(books)} of {len(items)} items")
        return books

    async def _make_api_request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Make an API request to Google Books"""
        url = f"{self.base_url}/{endpoint}"

        if self.api_key:
            params["key"] = self.api_key

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"API request timed out after {self.timeout}s")
            raise GoogleBooksAPIError("Google Books request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"API request failed: {e}")
            raise GoogleBooksAPIError(f"Google Books unreachable: {e}") from e

        response_time_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Google Books {endpoint} answered {response.status_code} in {response_time_ms}ms")

        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Google Books API")
            raise RateLimitExceeded("Rate limit exceeded")
        if response.status_code != 200:
            logger.error(f"API request failed: {response.status_code} - {response.text}")
            raise GoogleBooksAPIError(f"Google Books answered with status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise GoogleBooksAPIError("Google Books returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise GoogleBooksAPIError("Unexpected Google Books payload")
        return data

    def _parse_volume(self, item: Any) -> Optional[Book]:
        """Parse one search hit; returns None when the entry is unusable.

        Text fields that come back as anything other than a string are left
        unset; a non-string title makes the whole entry unusable.
        """
        if not isinstance(item, dict):
            logger.debug(f"Skipping malformed Google Books entry: {item!r}")
            return None
        volume_info = item.get("volumeInfo")
        if not isinstance(volume_info, dict):
            logger.debug(f"Skipping Google Books entry without volumeInfo: {item.get('id')}")
            return None
        title = volume_info.get("title")
        if title is not None and not isinstance(title, str):
            logger.debug(f"Skipping Google Books entry with non-text title: {item.get('id')}")
            return None

        identifier = _first(volume_info.get("industryIdentifiers"))
        isbn = identifier.get("identifier") if isinstance(identifier, dict) else None
        image_links = volume_info.get("imageLinks")
        thumbnail = image_links.get("thumbnail") if isinstance(image_links, dict) else None

        return Book(
            title=title,
            author=_text(_first(volume_info.get("authors"))),
            isbn=_text(isbn),
            publication_date=_text(volume_info.get("publishedDate")),
            category=_text(_first(volume_info.get("categories"))),
            thumbnail_url=_text(thumbnail),
        )
