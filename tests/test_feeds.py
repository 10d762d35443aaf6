from datetime import datetime, timezone

from rss_frontpage.feeds import MAX_PARSED_ITEMS, parse_document, parse_feed
from rss_frontpage.models import MetaTag

RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example</title>
    <link>https://example.com</link>
    <description>Example feed</description>
    <item>
      <title> First post </title>
      <link>https://example.com/first</link>
      <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
      <dc:creator>Jane Doe</dc:creator>
      <category>Python</category>
      <category>Testing</category>
    </item>
    <item>
      <link>https://example.com/untitled</link>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <id>urn:example</id>
  <updated>2024-01-02T10:00:00Z</updated>
  <entry>
    <title>Atom entry</title>
    <link href="https://example.org/entry"/>
    <id>urn:example:1</id>
    <updated>2024-01-02T10:00:00Z</updated>
    <author><name>Simon</name></author>
    <category term="llms"/>
  </entry>
</feed>
"""

HN_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Hacker News: Front Page</title>
    <link>https://news.ycombinator.com/</link>
    <description>Hacker News RSS</description>
    <item>
      <title>Show HN: Something</title>
      <link>https://something.example/</link>
      <pubDate>Tue, 02 Jan 2024 08:00:00 +0000</pubDate>
      <comments>https://news.ycombinator.com/item?id=1</comments>
      <description><![CDATA[
<p>Article URL: <a href="https://something.example/">https://something.example/</a></p>
<p>Comments URL: <a href="https://news.ycombinator.com/item?id=1">https://news.ycombinator.com/item?id=1</a></p>
<p>Points: 123</p>
<p># Comments: 45</p>
]]></description>
    </item>
  </channel>
</rss>
"""


def _rss_with_items(count: int) -> str:
    items = "".join(
        f"<item><title>Item {i}</title><link>https://example.com/{i}</link></item>"
        for i in range(count)
    )
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel><title>Big</title>'
        f"<link>https://example.com</link><description>d</description>{items}"
        "</channel></rss>"
    )


def test_parse_rss_extracts_author_and_first_category():
    parsed = parse_document(RSS_FEED, "https://example.com/feed.xml")

    assert parsed.dialect == "rss"
    first = parsed.items[0]
    assert first.title == "First post"
    assert first.link == "https://example.com/first"
    assert first.published_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert first.source_meta == [
        MetaTag(icon="✍", value="Jane Doe"),
        MetaTag(icon="\U0001f3f7", value="Python"),
    ]
    assert first.comments_link is None


def test_parse_rss_defaults_missing_fields():
    items = parse_feed(RSS_FEED, "https://example.com/feed.xml")

    untitled = items[1]
    assert untitled.title == "Untitled"
    assert untitled.link == "https://example.com/untitled"
    assert untitled.published_at is None
    assert untitled.display_age() == ""


def test_parse_atom_entry():
    parsed = parse_document(ATOM_FEED, "https://example.org/atom")

    assert parsed.dialect == "atom"
    assert len(parsed.items) == 1
    entry = parsed.items[0]
    assert entry.link == "https://example.org/entry"
    assert entry.published_at == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)
    assert MetaTag(icon="✍", value="Simon") in entry.source_meta
    assert MetaTag(icon="\U0001f3f7", value="llms") in entry.source_meta


def test_parse_hacker_news_points_and_comments():
    items = parse_feed(HN_FEED, "https://hnrss.org/frontpage")

    item = items[0]
    assert item.source_meta == [
        MetaTag(icon="▲", value="123"),
        MetaTag(icon="\U0001f4ac", value="45"),
    ]
    assert item.comments_link == "https://news.ycombinator.com/item?id=1"


def test_hacker_news_shape_is_chosen_by_url_only():
    items = parse_feed(HN_FEED, "https://example.com/mirror")

    assert items[0].comments_link is None
    assert all(tag.icon != "▲" for tag in items[0].source_meta)


def test_parse_caps_entries_and_keeps_document_order():
    items = parse_feed(_rss_with_items(80), "https://example.com/big")

    assert len(items) == MAX_PARSED_ITEMS
    assert [item.title for item in items[:3]] == ["Item 0", "Item 1", "Item 2"]
    assert items[-1].title == f"Item {MAX_PARSED_ITEMS - 1}"


def test_parse_garbage_never_raises():
    parsed = parse_document(b"<html><body>not a feed</body></html>", "https://x.test")

    assert parsed.dialect is None
    assert parsed.items == []
    assert parse_feed("", "https://x.test") == []
