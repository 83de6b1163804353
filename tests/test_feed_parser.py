from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fixtures import FIXED_NOW, make_source, rss_feed
from newsdesk.services.feed_parser import FeedParseError, parse_feed, parse_pub_date


def test_parse_feed_happy_path_cdata_and_plain():
    xml = """
    <rss version="2.0">
      <channel>
        <title>Example RSS</title>
        <item>
          <title><![CDATA[Markets rally &amp; recover]]></title>
          <link>https://news.site/markets</link>
          <description><![CDATA[<p>Stocks <b>rose</b> sharply.</p>]]></description>
          <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
        </item>
        <item>
          <title>Plain title</title>
          <link>https://news.site/plain</link>
        </item>
      </channel>
    </rss>
    """
    items = parse_feed(xml, make_source(), now=FIXED_NOW)

    assert [item.raw_title for item in items] == ["Markets rally & recover", "Plain title"]
    first, second = items
    assert first.raw_link == "https://news.site/markets"
    assert first.raw_description == "Stocks rose sharply."
    assert first.published_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert second.raw_description == ""
    assert second.published_at == FIXED_NOW


def test_parse_feed_drops_items_missing_title_or_link():
    xml = """
    <rss><channel>
      <item><title>No link here</title></item>
      <item><link>https://news.site/untitled</link></item>
      <item><title>Kept item</title><link>https://news.site/kept</link></item>
    </channel></rss>
    """
    items = parse_feed(xml, make_source(), now=FIXED_NOW)

    assert len(items) == 1
    assert items[0].raw_link == "https://news.site/kept"


def test_parse_feed_caps_items_per_feed():
    xml = rss_feed((f"Headline number {i}", f"https://news.site/{i}") for i in range(25))

    items = parse_feed(xml, make_source(), max_items=10, now=FIXED_NOW)

    assert len(items) == 10
    assert items[-1].raw_link == "https://news.site/9"


def test_parse_feed_unparseable_date_defaults_to_now():
    xml = rss_feed([("Dated item", "https://news.site/d")], pub_date="sometime last week")

    items = parse_feed(xml, make_source(), now=FIXED_NOW)

    assert items[0].published_at == FIXED_NOW


def test_parse_feed_google_news_source_and_description_link():
    xml = """
    <rss><channel>
      <item>
        <title>Court rules on appeal - The Daily Paper</title>
        <link>https://news.google.com/rss/articles/CBMiXYZ?oc=5</link>
        <description>&lt;a href="https://dailypaper.news/court-appeal" target="_blank"&gt;Court rules on appeal&lt;/a&gt;</description>
        <source url="https://dailypaper.news">The Daily Paper</source>
      </item>
    </channel></rss>
    """
    items = parse_feed(xml, make_source(kind="google_news"), now=FIXED_NOW)

    assert len(items) == 1
    item = items[0]
    assert item.raw_source_name == "The Daily Paper"
    assert item.description_link == "https://dailypaper.news/court-appeal"
    assert item.raw_description == "Court rules on appeal"


def test_parse_feed_empty_channel_is_not_an_error():
    assert parse_feed("<rss><channel><title>x</title></channel></rss>", make_source()) == []


@pytest.mark.parametrize("payload", ["", "   ", "<html><body>Service unavailable</body></html>"])
def test_parse_feed_rejects_non_feed_payloads(payload):
    with pytest.raises(FeedParseError):
        parse_feed(payload, make_source())


def test_parse_pub_date_formats():
    assert parse_pub_date("Tue, 04 Jun 2024 08:30:00 +0200") == datetime(2024, 6, 4, 6, 30, tzinfo=timezone.utc)
    assert parse_pub_date("2024-06-04T08:30:00Z") == datetime(2024, 6, 4, 8, 30, tzinfo=timezone.utc)
    assert parse_pub_date("2024-06-04T08:30:00").tzinfo is not None
    assert parse_pub_date("not a date") is None
    assert parse_pub_date(None) is None


def test_parse_feed_atom_entries():
    xml = """<?xml version="1.0" encoding="utf-8"?>
    <feed xmlns="http://www.w3.org/2005/Atom">
      <title>Wire</title>
      <entry>
        <title type="html">Ports reopen &amp; cargo resumes</title>
        <link rel="self" href="https://wire.news/api/ports"/>
        <link rel="alternate" href="https://wire.news/ports"/>
        <summary type="html">&lt;p&gt;Shipping traffic is back.&lt;/p&gt;</summary>
        <published>2024-06-01T09:00:00Z</published>
        <source><title>Harbour Daily</title><id>urn:harbour</id></source>
      </entry>
      <entry>
        <title>Rail strike ends</title>
        <link href="https://wire.news/rail"/>
        <updated>2024-06-01T08:00:00+00:00</updated>
      </entry>
    </feed>
    """
    items = parse_feed(xml, make_source(), now=FIXED_NOW)

    assert [item.raw_link for item in items] == ["https://wire.news/ports", "https://wire.news/rail"]
    first, second = items
    assert first.raw_title == "Ports reopen & cargo resumes"
    assert first.raw_description == "Shipping traffic is back."
    assert first.raw_source_name == "Harbour Daily"
    assert first.published_at == datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    assert second.published_at == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
    assert second.raw_source_name is None


def test_parse_feed_keeps_unstorable_entities_encoded():
    xml = """
    <rss><channel>
      <item><title>Budget vote &#xD800; tonight</title><link>https://a.news/1</link></item>
      <item><title>Markets rally &#0; today</title><link>https://a.news/2</link></item>
    </channel></rss>
    """
    items = parse_feed(xml, make_source(), now=FIXED_NOW)

    titles = [item.raw_title for item in items]
    assert titles == ["Budget vote &#xD800; tonight", "Markets rally &#0; today"]
    for title in titles:
        title.encode("utf-8")
