"""Background polling loop: fetch, match, dedup and submit feed items."""

import asyncio
import concurrent.futures
import logging
from datetime import datetime
from typing import Awaitable, Callable

from torrentfeed.database import Database, PersistenceError
from torrentfeed.feed_parser import FeedParseError, fetch_and_parse
from torrentfeed.matcher import (
    PatternError,
    compile_pattern,
    filter_matching,
    resolve_torrent_link,
)
from torrentfeed.models import CandidateItem, CheckResult, DownloadedItem, Feed, utcnow
from torrentfeed.registry import FeedNotFoundError
from torrentfeed.transmission import TransmissionClient, TransmissionError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 900  # 15 minutes

Fetcher = Callable[[str], Awaitable[list[CandidateItem]]]


class CheckInterrupted(Exception):
    """The poller was stopped while a feed was being fetched."""


class FeedPoller:
    """Periodically checks due feeds and submits new matching items.

    Checks of the same feed never overlap: every check, scheduled or
    triggered manually, holds that feed's lock for its whole duration.
    """

    def __init__(
        self,
        db: Database,
        client: TransmissionClient,
        fetcher: Fetcher = fetch_and_parse,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_concurrent: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.client = client
        self.fetcher = fetcher
        self.poll_interval = poll_interval
        self.max_concurrent = max(1, max_concurrent)
        self._clock = clock
        self._feed_locks: dict[int, asyncio.Lock] = {}
        self._checks: set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # --- Lifecycle ---

    def start(self) -> asyncio.Task:
        """Start the polling loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the loop and wait for every in-flight check to finish.

        Fetches in flight are cancelled. A daemon call in flight is
        allowed to complete so its result can be recorded.
        """
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        if self._checks:
            await asyncio.gather(*self._checks, return_exceptions=True)

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Poll immediately, then every poll_interval seconds until stopped."""
        logger.info("Poller started (interval: %ds)", self.poll_interval)

        while not self._stop_event.is_set():
            try:
                submitted = await self.poll_feeds_once()
                if submitted > 0:
                    logger.info("Poll cycle complete: %d torrents added", submitted)
            except Exception:
                logger.exception("Poll cycle failed")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.poll_interval
                )
            except asyncio.TimeoutError:
                pass

        logger.info("Poller stopped")

    # --- Checks ---

    async def poll_feeds_once(self) -> int:
        """Check every enabled, due feed once. Returns count of torrents added."""
        now = self._clock()
        due = [f for f in self.db.get_all_feeds() if f.enabled and f.is_due(now)]
        if not due:
            return 0

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def check_bounded(feed: Feed) -> int:
            async with semaphore:
                if self._stop_event.is_set():
                    return 0
                try:
                    result = await self.check_feed(feed.id)
                except Exception:
                    logger.exception("Error checking feed '%s'", feed.name)
                    return 0
                return result.submitted

        results = await asyncio.gather(*(check_bounded(f) for f in due))
        return sum(results)

    async def check_feed(self, feed_id: int) -> CheckResult:
        """Check one feed now, regardless of its schedule.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            RuntimeError: If the poller has been stopped.
        """
        if self._stop_event.is_set():
            raise RuntimeError("Poller is stopped")

        task = asyncio.current_task()
        self._checks.add(task)
        try:
            lock = self._feed_locks.setdefault(feed_id, asyncio.Lock())
            async with lock:
                return await self._check_feed_locked(feed_id)
        except FeedNotFoundError:
            self._feed_locks.pop(feed_id, None)
            raise
        finally:
            self._checks.discard(task)

    def trigger_check(self, feed_id: int) -> concurrent.futures.Future:
        """Schedule a check of one feed from outside the poller's event loop."""
        if self._loop is None:
            raise RuntimeError("Poller not started. Call start() first.")
        return asyncio.run_coroutine_threadsafe(self.check_feed(feed_id), self._loop)

    async def _check_feed_locked(self, feed_id: int) -> CheckResult:
        feed = self.db.get_feed_by_id(feed_id)
        if feed is None:
            raise FeedNotFoundError(f"No feed with id {feed_id}")

        result = CheckResult(feed_id=feed_id)

        try:
            pattern = compile_pattern(feed.pattern)
        except PatternError as e:
            return self._fail_feed(feed, result, str(e))

        try:
            items = await self._fetch_unless_stopped(feed.url)
        except CheckInterrupted:
            logger.info("Fetch of feed '%s' cancelled by shutdown", feed.name)
            result.error = "check interrupted by shutdown"
            return result
        except FeedParseError as e:
            return self._fail_feed(feed, result, f"failed to parse feed: {e}")
        except Exception as e:
            logger.exception("Unexpected error fetching feed '%s'", feed.name)
            return self._fail_feed(feed, result, f"failed to fetch feed: {e}")

        result.items_seen = len(items)
        matching = filter_matching(pattern, items)
        result.matched = len(matching)
        logger.info(
            "Checking feed '%s' with pattern %s: %d items, %d matching",
            feed.name, feed.pattern, len(items), len(matching),
        )

        for item in matching:
            if self._stop_event.is_set():
                logger.info("Stopping mid-check of feed '%s'", feed.name)
                break

            if self.db.is_downloaded(feed.id, item.guid):
                logger.debug("Already downloaded: %s", item.title)
                result.skipped_duplicates += 1
                continue

            link = resolve_torrent_link(item)
            if link is None:
                logger.info("No torrent link found for: %s", item.title)
                continue

            try:
                submitted = await self._submit(feed, item, link, result)
            except Exception:
                logger.exception("Unexpected error adding torrent %s", item.title)
                result.failed += 1
                continue

            if submitted:
                result.submitted += 1
                logger.info("Added torrent from feed '%s': %s", feed.name, item.title)

        if result.failed:
            result.error = f"{result.failed} item(s) failed to download"

        try:
            self.db.update_feed_checked(
                feed.id, self._clock(), result.submitted, result.error
            )
        except PersistenceError as e:
            logger.error("Failed to update status of feed '%s': %s", feed.name, e)

        return result

    async def _fetch_unless_stopped(self, url: str) -> list[CandidateItem]:
        """Fetch a feed, cancelling the request if the poller stops first."""
        fetch = asyncio.ensure_future(self.fetcher(url))
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {fetch, stopped}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopped.cancel()
            if not fetch.done():
                fetch.cancel()

        if fetch not in done:
            raise CheckInterrupted(url)
        return fetch.result()

    async def _submit(
        self, feed: Feed, item: CandidateItem, link: str, result: CheckResult
    ) -> bool:
        """Send one item to the daemon and record it. Returns True if both succeed."""
        try:
            await asyncio.to_thread(self.client.add_torrent, link)
        except TransmissionError as e:
            logger.warning("Failed to add torrent %s: %s", item.title, e)
            result.failed += 1
            return False

        # The daemon already has the torrent at this point; if the record
        # fails the item stays eligible and may be submitted again next cycle.
        try:
            recorded = self.db.record_download(
                DownloadedItem(
                    feed_id=feed.id,
                    item_guid=item.guid,
                    item_title=item.title,
                    item_link=link,
                    downloaded_at=self._clock(),
                )
            )
        except PersistenceError as e:
            logger.error("Failed to mark item as downloaded %s: %s", item.title, e)
            result.failed += 1
            return False

        if not recorded:
            logger.debug("Item recorded concurrently: %s", item.title)
            result.skipped_duplicates += 1
            return False
        return True

    def _fail_feed(self, feed: Feed, result: CheckResult, message: str) -> CheckResult:
        logger.warning("Feed '%s' error: %s", feed.name, message)
        result.error = message
        try:
            self.db.update_feed_error(feed.id, self._clock(), message)
        except PersistenceError as e:
            logger.error("Failed to record error for feed '%s': %s", feed.name, e)
        return result
