"""RSS/Atom feed fetching and parsing using httpx and feedparser."""

import logging
from urllib.parse import urlparse

import feedparser
import httpx

from torrentfeed.models import CandidateItem

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30.0
USER_AGENT = "torrentfeed/0.1 (+feedparser)"

# feedparser entry keys that are not vendor-specific link fields
STANDARD_ENTRY_KEYS = frozenset({
    "id",
    "guidislink",
    "title",
    "title_detail",
    "link",
    "links",
    "enclosures",
    "summary",
    "summary_detail",
    "content",
    "published",
    "published_parsed",
    "updated",
    "updated_parsed",
    "author",
    "author_detail",
    "authors",
    "tags",
    "comments",
})


class FeedParseError(Exception):
    """Raised when a feed cannot be fetched or parsed."""


class FeedFetchError(FeedParseError):
    """The feed source was unreachable or answered with an error status."""


class FeedFormatError(FeedParseError):
    """The document is not a readable RSS or Atom feed."""


async def fetch_and_parse(
    url: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    client: httpx.AsyncClient | None = None,
) -> list[CandidateItem]:
    """Fetch and parse an RSS or Atom feed from a URL.

    Args:
        url: The feed URL to fetch and parse.
        timeout: Overall request timeout in seconds.
        client: Optional httpx client to reuse; one is created otherwise.

    Returns:
        Candidate items in document order. An empty list is a valid result.

    Raises:
        FeedFetchError: If the URL is invalid or the source is unreachable.
        FeedFormatError: If the response is not a valid RSS or Atom feed.
    """
    _validate_url(url)

    if client is None:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as owned:
            content = await _download(owned, url)
    else:
        content = await _download(client, url)

    return parse_document(content)


def parse_document(content: bytes | str) -> list[CandidateItem]:
    """Parse a feed document already in memory."""
    parsed = feedparser.parse(content)

    if not parsed.get("version") and not parsed.entries:
        if parsed.bozo:
            raise FeedFormatError(
                f"URL does not point to a valid RSS or Atom feed: {parsed.get('bozo_exception')}"
            )
        raise FeedFormatError("URL does not point to a valid RSS or Atom feed")

    if parsed.bozo:
        logger.debug("Feed has formatting issues: %s", parsed.get("bozo_exception"))

    return _extract_items(parsed.entries)


async def _download(client: httpx.AsyncClient, url: str) -> bytes:
    try:
        response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise FeedFetchError(f"Could not reach URL: {e}") from e
    except ValueError as e:
        # idna rejects host labels over 63 characters when connecting
        raise FeedFetchError(f"Could not reach URL: {e}") from e

    if response.status_code in (401, 403):
        raise FeedFetchError(
            "Feed requires authentication. Ensure the URL is publicly accessible."
        )
    if response.status_code >= 400:
        raise FeedFetchError(f"Could not reach URL: HTTP {response.status_code}")

    return response.content


def _validate_url(url: str) -> None:
    """Validate that the URL has a valid format."""
    try:
        result = urlparse(url)
    except ValueError:
        raise FeedFetchError("Invalid URL format")
    if not result.scheme or not result.netloc:
        raise FeedFetchError("Invalid URL format")
    if result.scheme not in ("http", "https"):
        raise FeedFetchError("Invalid URL format: only http and https are supported")


def _extract_items(entries: list) -> list[CandidateItem]:
    """Extract candidate items from feedparser entries, keeping feed order."""
    items = []
    for entry in entries:
        link = entry.get("link")
        enclosures = [
            enc.get("href") for enc in entry.get("enclosures", []) if enc.get("href")
        ]

        guid = entry.get("id") or link or (enclosures[0] if enclosures else None)
        if not guid:
            logger.warning(
                "Skipping entry with no identifier: %s", entry.get("title", "unknown")
            )
            continue

        items.append(
            CandidateItem(
                title=entry.get("title", ""),
                guid=guid,
                link=link,
                enclosures=enclosures,
                custom=_custom_fields(entry),
            )
        )
    return items


def _custom_fields(entry: dict) -> dict[str, str]:
    """Collect non-standard string fields (e.g. ``torrent_magneturi``)."""
    return {
        key: value.strip()
        for key, value in entry.items()
        if key not in STANDARD_ENTRY_KEYS and isinstance(value, str) and value.strip()
    }
