"""Data models for torrentfeed."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

DEFAULT_CHECK_INTERVAL = 15  # minutes


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Feed:
    """A subscribed RSS/Atom source with its match pattern and polling policy."""

    name: str
    url: str
    pattern: str
    enabled: bool = True
    check_interval: int = DEFAULT_CHECK_INTERVAL  # minutes
    last_checked: datetime | None = None
    last_error: str | None = None
    match_count: int = 0
    id: int | None = None

    def is_due(self, now: datetime) -> bool:
        """True when the feed has never been checked or its interval has elapsed."""
        if self.last_checked is None:
            return True
        return now - self.last_checked >= timedelta(minutes=self.check_interval)


@dataclass
class DownloadedItem:
    """An item that was submitted to the daemon for a feed."""

    feed_id: int
    item_guid: str
    item_title: str
    item_link: str
    downloaded_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class CandidateItem:
    """One entry parsed from a feed document, before match/dedup filtering."""

    title: str
    guid: str
    link: str | None = None
    enclosures: list[str] = field(default_factory=list)
    custom: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckResult:
    """Outcome of checking a single feed."""

    feed_id: int
    items_seen: int = 0
    matched: int = 0
    submitted: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    error: str | None = None
