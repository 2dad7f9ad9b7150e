"""Title pattern matching and torrent link resolution."""

import re
from typing import Iterable

from torrentfeed.models import CandidateItem

MAGNET_PREFIX = "magnet:?"
TORRENT_SUFFIX = ".torrent"


class PatternError(ValueError):
    """Raised when a feed's match pattern is not a valid regular expression."""


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a feed pattern.

    Raises:
        PatternError: If the pattern does not compile.
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(f"invalid regex pattern: {e}") from e


def title_matches(pattern: re.Pattern, title: str) -> bool:
    """Case-sensitive search anywhere in the title, not a full match."""
    return pattern.search(title) is not None


def filter_matching(
    pattern: re.Pattern, items: Iterable[CandidateItem]
) -> list[CandidateItem]:
    """Keep items whose title matches, in their original order."""
    return [item for item in items if title_matches(pattern, item.title)]


def is_magnet_link(url: str) -> bool:
    return len(url) > len(MAGNET_PREFIX) and url.startswith(MAGNET_PREFIX)


def is_torrent_file(url: str) -> bool:
    return len(url) > len(TORRENT_SUFFIX) and url.endswith(TORRENT_SUFFIX)


def is_torrent_link(url: str | None) -> bool:
    return bool(url) and (is_magnet_link(url) or is_torrent_file(url))


def resolve_torrent_link(item: CandidateItem) -> str | None:
    """Pick the link to submit for an item.

    Precedence: the item's own link, then the first qualifying enclosure,
    then any vendor-specific field (e.g. ``torrent_magneturi``).
    """
    if is_torrent_link(item.link):
        return item.link

    for url in item.enclosures:
        if is_torrent_link(url):
            return url

    for value in item.custom.values():
        if is_torrent_link(value):
            return value

    return None
