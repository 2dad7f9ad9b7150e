"""Entry point for torrentfeed: python -m torrentfeed"""

import asyncio
import functools
import logging
import signal

from torrentfeed.config import Config
from torrentfeed.database import Database
from torrentfeed.feed_parser import fetch_and_parse
from torrentfeed.poller import FeedPoller
from torrentfeed.transmission import TransmissionClient

logger = logging.getLogger("torrentfeed")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def main(config: Config) -> None:
    """Run the feed poller until SIGINT or SIGTERM."""
    db = Database(config.db_path)
    db.connect()

    client = TransmissionClient(
        config.transmission_url,
        username=config.transmission_user or None,
        password=config.transmission_pass,
        timeout=config.rpc_timeout,
    )
    poller = FeedPoller(
        db,
        client,
        fetcher=functools.partial(fetch_and_parse, timeout=config.fetch_timeout),
        poll_interval=config.poll_interval,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    logger.info("Connecting to Transmission at %s", config.transmission_url)
    poller.start()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        await poller.stop()
        client.close()
        db.close()


def run() -> None:
    config = Config.from_env()
    configure_logging(config.log_level)
    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
