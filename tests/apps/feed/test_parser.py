"""Tests for apps/feed/parser.py and apps/feed/cron.py."""

from __future__ import annotations

from apscheduler.triggers.cron import CronTrigger
import pytest

from apps.feed.cron import resolve_cron
from apps.feed.parser import html_to_text, parse_feed
from common.exceptions import FeedParseError


class TestParseFeed:
    """Syndication parsing.

    RSS 条目映射为文章字段，频道信息用于回填订阅源。
    """

    def test_items_and_channel(self, rss):
        raw = rss(
            {
                "guid": "item-1",
                "title": "First",
                "link": "https://example.com/1",
                "author": "alice@example.com (Alice)",
                "description": "<p>Hello <b>world</b></p>",
            },
            {"title": "No guid", "link": "https://example.com/2"},
        )

        parsed = parse_feed(raw)

        assert parsed.title == "Example Feed"
        assert parsed.description == "Example feed description"
        assert parsed.image_url == "https://example.com/logo.png"
        assert [item["guid"] for item in parsed.items] == ["item-1", "https://example.com/2"]
        first = parsed.items[0]
        assert first["content_snippet"] == "Hello world"
        assert first["link"] == "https://example.com/1"

    def test_enclosure(self, rss):
        raw = rss(
            {
                "guid": "t-1",
                "title": "Torrent",
                "enclosure": {
                    "url": "https://tracker.example.com/a.torrent",
                    "type": "application/x-bittorrent",
                    "length": "2048",
                },
            }
        )

        item = parse_feed(raw).items[0]

        assert item["enclosure_url"] == "https://tracker.example.com/a.torrent"
        assert item["enclosure_type"] == "application/x-bittorrent"
        assert item["enclosure_length"] == 2048

    def test_not_a_feed(self):
        with pytest.raises(FeedParseError):
            parse_feed("this is not xml at all <<<")

    def test_html_to_text(self):
        assert html_to_text(None) == ""
        assert html_to_text("<div>a <i>b</i></div>") == "a b"


class TestResolveCron:
    """Cron label resolution.

    cron 标签查表，查不到时按原始表达式解析。
    """

    def test_known_label(self):
        trigger = resolve_cron("EVERY_10_MINUTES", "Asia/Shanghai")

        assert isinstance(trigger, CronTrigger)
        assert str(trigger.fields[6]) == "*/10"

    def test_raw_expression(self):
        assert isinstance(resolve_cron("0 8 * * *", "UTC"), CronTrigger)

    @pytest.mark.parametrize("label", [None, "", "EVERY_FORTNIGHT"])
    def test_unresolvable(self, label):
        assert resolve_cron(label, "UTC") is None
