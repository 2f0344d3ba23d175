from datetime import datetime, timezone

import pytest

from feedboard.cache import CacheStore
from feedboard.storage import MemoryStorage


class FakeClock:
    """Mutable clock for expiry tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    # 2024-05-10 12:00 JST
    return FakeClock(datetime(2024, 5, 10, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def cache(storage, clock):
    return CacheStore(storage, clock=clock)


RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Hacker News: Front Page</title>
    <item>
      <title>Show HN: A tiny database</title>
      <link>https://example.com/db</link>
      <pubDate>Fri, 10 May 2024 01:00:00 +0000</pubDate>
      <description><![CDATA[<p>Points: <b>120</b> &amp; comments</p>]]></description>
    </item>
    <item>
      <title>Rust in production</title>
      <link>https://example.com/rust</link>
      <pubDate>Fri, 10 May 2024 02:00:00 +0000</pubDate>
      <description>Plain text</description>
    </item>
    <item>
      <title>No link here</title>
      <pubDate>Fri, 10 May 2024 03:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

RDF_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rdf:RDF xmlns="http://purl.org/rss/1.0/"
         xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="https://b.hatena.ne.jp/hotentry/it">
    <title>はてなブックマーク - IT</title>
  </channel>
  <item rdf:about="https://example.jp/a">
    <title>型安全なAPI設計</title>
    <link>https://example.jp/a</link>
    <description>記事の説明</description>
    <dc:date>2024-05-10T09:30:00+09:00</dc:date>
  </item>
  <item rdf:about="https://example.jp/b">
    <title>  </title>
    <link>https://example.jp/b</link>
  </item>
</rdf:RDF>
"""


@pytest.fixture
def rss_feed():
    return RSS_FEED


@pytest.fixture
def rdf_feed():
    return RDF_FEED
