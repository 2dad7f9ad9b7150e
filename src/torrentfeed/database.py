"""SQLite storage for feed definitions and downloaded items."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from torrentfeed.models import DownloadedItem, Feed, utcnow

DEFAULT_ITEM_LIMIT = 50

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    pattern TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    check_interval INTEGER NOT NULL DEFAULT 15,
    last_checked TEXT,
    last_error TEXT,
    match_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS downloaded_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    item_guid TEXT NOT NULL,
    item_title TEXT NOT NULL,
    item_link TEXT NOT NULL,
    downloaded_at TEXT NOT NULL,
    UNIQUE(feed_id, item_guid)
);

CREATE INDEX IF NOT EXISTS idx_downloaded_guid ON downloaded_items(item_guid);
CREATE INDEX IF NOT EXISTS idx_feeds_enabled ON feeds(enabled);
"""


class PersistenceError(Exception):
    """Raised when a storage operation fails."""


class DuplicateFeedError(PersistenceError):
    """Raised when a feed URL is already registered."""


class Database:
    """SQLite database manager for feeds and their downloaded items."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run a write in a transaction, translating sqlite errors."""
        conn = self.conn
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e

    # --- Feed operations ---

    def add_feed(self, feed: Feed) -> Feed:
        """Insert a new feed and return it with its assigned id."""
        try:
            with self._write() as conn:
                cursor = conn.execute(
                    """INSERT INTO feeds (name, url, pattern, enabled, check_interval)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        feed.name,
                        feed.url,
                        feed.pattern,
                        int(feed.enabled),
                        feed.check_interval,
                    ),
                )
        except PersistenceError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise DuplicateFeedError(f"Feed URL already exists: {feed.url}") from e.__cause__
            raise
        feed.id = cursor.lastrowid
        return feed

    def update_feed(self, feed: Feed) -> bool:
        """Update a feed's user-editable fields. Returns True if a row changed."""
        try:
            with self._write() as conn:
                cursor = conn.execute(
                    """UPDATE feeds SET name = ?, url = ?, pattern = ?, enabled = ?,
                       check_interval = ? WHERE id = ?""",
                    (
                        feed.name,
                        feed.url,
                        feed.pattern,
                        int(feed.enabled),
                        feed.check_interval,
                        feed.id,
                    ),
                )
        except PersistenceError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise DuplicateFeedError(f"Feed URL already exists: {feed.url}") from e.__cause__
            raise
        return cursor.rowcount > 0

    def get_feed_by_id(self, feed_id: int) -> Feed | None:
        """Look up a feed by its id."""
        row = self.conn.execute(
            "SELECT * FROM feeds WHERE id = ?", (feed_id,)
        ).fetchone()
        return _row_to_feed(row) if row else None

    def get_all_feeds(self) -> list[Feed]:
        """Return all feeds in id order."""
        rows = self.conn.execute("SELECT * FROM feeds ORDER BY id").fetchall()
        return [_row_to_feed(r) for r in rows]

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed and its downloaded items (cascade). Returns True if deleted."""
        with self._write() as conn:
            cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        return cursor.rowcount > 0

    def update_feed_checked(
        self,
        feed_id: int,
        checked_at: datetime,
        new_matches: int,
        error_message: str | None = None,
    ) -> None:
        """Record a completed check: timestamp, accumulated matches, error state."""
        with self._write() as conn:
            conn.execute(
                """UPDATE feeds SET last_checked = ?, last_error = ?,
                   match_count = match_count + ? WHERE id = ?""",
                (_dt_to_str(checked_at), error_message, new_matches, feed_id),
            )

    def update_feed_error(
        self, feed_id: int, checked_at: datetime, error_message: str
    ) -> None:
        """Record a feed-level failure without touching the match count."""
        with self._write() as conn:
            conn.execute(
                "UPDATE feeds SET last_checked = ?, last_error = ? WHERE id = ?",
                (_dt_to_str(checked_at), error_message, feed_id),
            )

    # --- Downloaded item operations ---

    def is_downloaded(self, feed_id: int, guid: str) -> bool:
        """Check if an item with the given guid was already submitted for a feed."""
        row = self.conn.execute(
            "SELECT 1 FROM downloaded_items WHERE feed_id = ? AND item_guid = ?",
            (feed_id, guid),
        ).fetchone()
        return row is not None

    def record_download(self, item: DownloadedItem) -> bool:
        """Insert a downloaded item unless the (feed, guid) pair already exists.

        Returns:
            True if a row was inserted, False if the pair was already recorded.

        Raises:
            PersistenceError: If the insert fails for any other reason.
        """
        with self._write() as conn:
            cursor = conn.execute(
                """INSERT INTO downloaded_items
                   (feed_id, item_guid, item_title, item_link, downloaded_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(feed_id, item_guid) DO NOTHING""",
                (
                    item.feed_id,
                    item.item_guid,
                    item.item_title,
                    item.item_link,
                    _dt_to_str(item.downloaded_at),
                ),
            )
        if cursor.rowcount > 0:
            item.id = cursor.lastrowid
            return True
        return False

    def get_downloaded_items(
        self, feed_id: int, limit: int = DEFAULT_ITEM_LIMIT
    ) -> list[DownloadedItem]:
        """Get a feed's downloaded items, most recent first."""
        if limit <= 0:
            limit = DEFAULT_ITEM_LIMIT
        rows = self.conn.execute(
            """SELECT * FROM downloaded_items WHERE feed_id = ?
               ORDER BY downloaded_at DESC, id DESC LIMIT ?""",
            (feed_id, limit),
        ).fetchall()
        return [_row_to_downloaded_item(r) for r in rows]

    def get_downloaded_count(self, feed_id: int) -> int:
        """Get the number of items recorded for a feed."""
        row = self.conn.execute(
            "SELECT COUNT(*) as cnt FROM downloaded_items WHERE feed_id = ?",
            (feed_id,),
        ).fetchone()
        return row["cnt"] if row else 0


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored ISO string back to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        pattern=row["pattern"],
        enabled=bool(row["enabled"]),
        check_interval=row["check_interval"],
        last_checked=_str_to_dt(row["last_checked"]),
        last_error=row["last_error"],
        match_count=row["match_count"],
    )


def _row_to_downloaded_item(row: sqlite3.Row) -> DownloadedItem:
    """Convert a database row to a DownloadedItem dataclass."""
    return DownloadedItem(
        id=row["id"],
        feed_id=row["feed_id"],
        item_guid=row["item_guid"],
        item_title=row["item_title"],
        item_link=row["item_link"],
        downloaded_at=_str_to_dt(row["downloaded_at"]) or utcnow(),
    )
