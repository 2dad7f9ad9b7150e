"""Validated CRUD over feed definitions."""

import logging

from torrentfeed.database import DEFAULT_ITEM_LIMIT, Database
from torrentfeed.matcher import compile_pattern
from torrentfeed.models import DEFAULT_CHECK_INTERVAL, DownloadedItem, Feed

logger = logging.getLogger(__name__)


class FeedNotFoundError(LookupError):
    """Raised when a feed id does not exist."""


class FeedRegistry:
    """Feed catalog used by the dashboard layer and the poller.

    Patterns are compiled before every write so an invalid expression is
    never persisted.
    """

    def __init__(self, db: Database):
        self.db = db

    def list_feeds(self) -> list[Feed]:
        return self.db.get_all_feeds()

    def get_feed(self, feed_id: int) -> Feed:
        feed = self.db.get_feed_by_id(feed_id)
        if feed is None:
            raise FeedNotFoundError(f"No feed with id {feed_id}")
        return feed

    def add_feed(self, feed: Feed) -> Feed:
        """Validate and insert a feed.

        Raises:
            PatternError: If the pattern does not compile.
            DuplicateFeedError: If the URL is already registered.
        """
        compile_pattern(feed.pattern)
        if feed.check_interval <= 0:
            feed.check_interval = DEFAULT_CHECK_INTERVAL
        saved = self.db.add_feed(feed)
        logger.info("Added feed '%s' (%s)", saved.name, saved.url)
        return saved

    def update_feed(self, feed: Feed) -> Feed:
        """Validate and save user-editable fields of an existing feed."""
        compile_pattern(feed.pattern)
        if feed.check_interval <= 0:
            feed.check_interval = DEFAULT_CHECK_INTERVAL
        if feed.id is None or not self.db.update_feed(feed):
            raise FeedNotFoundError(f"No feed with id {feed.id}")
        return self.get_feed(feed.id)

    def delete_feed(self, feed_id: int) -> None:
        """Delete a feed and its downloaded-item history."""
        if not self.db.delete_feed(feed_id):
            raise FeedNotFoundError(f"No feed with id {feed_id}")
        logger.info("Deleted feed %d", feed_id)

    def list_downloaded_items(
        self, feed_id: int, limit: int = DEFAULT_ITEM_LIMIT
    ) -> list[DownloadedItem]:
        return self.db.get_downloaded_items(feed_id, limit)
