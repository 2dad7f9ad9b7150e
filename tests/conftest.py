"""Shared test fixtures for torrentfeed tests."""

import os
import tempfile
from unittest.mock import MagicMock

import pytest

from torrentfeed.database import Database
from torrentfeed.models import Feed
from torrentfeed.rpc_models import TorrentAdded


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:torrent="http://xmlns.ezrss.it/0.1/">
  <channel>
    <title>Linux ISOs</title>
    <link>https://example.com</link>
    <description>Release torrents</description>
    <item>
      <title>Ubuntu 24.04 Desktop</title>
      <link>https://example.com/ubuntu-24.04-desktop.torrent</link>
      <guid>ubuntu-24.04-desktop</guid>
    </item>
    <item>
      <title>Debian 12 Netinst</title>
      <link>https://example.com/debian-12.torrent</link>
      <guid>debian-12-netinst</guid>
    </item>
    <item>
      <title>Ubuntu 24.04 Server</title>
      <link>https://example.com/releases/ubuntu-server</link>
      <guid>ubuntu-24.04-server</guid>
      <enclosure url="https://example.com/ubuntu-24.04-server.torrent"
                 length="1024" type="application/x-bittorrent"/>
    </item>
    <item>
      <title>Ubuntu 24.04 Core</title>
      <link>https://example.com/releases/ubuntu-core</link>
      <guid>ubuntu-24.04-core</guid>
      <torrent:magnetURI>magnet:?xt=urn:btih:0123456789abcdef</torrent:magnetURI>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <entry>
    <title>Fedora 40 Workstation</title>
    <link href="https://example.com/fedora-40.torrent"/>
    <id>urn:uuid:fedora-40</id>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_EMPTY_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Empty Feed</title>
    <link>https://example.com</link>
  </channel>
</rss>"""

SAMPLE_NOT_A_FEED = "this is plain text, not a feed at all"


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected Database on a temporary file."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def feed(db):
    """A persisted, enabled feed matching Ubuntu releases."""
    return db.add_feed(
        Feed(name="Linux ISOs", url="https://example.com/rss", pattern="^Ubuntu")
    )


@pytest.fixture
def mock_client():
    """A TransmissionClient stand-in whose add_torrent succeeds."""
    client = MagicMock()
    client.add_torrent.return_value = TorrentAdded(id=1, name="added")
    return client


@pytest.fixture
def sample_rss_xml():
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_empty_rss_xml():
    return SAMPLE_EMPTY_RSS_XML


@pytest.fixture
def sample_not_a_feed():
    return SAMPLE_NOT_A_FEED
