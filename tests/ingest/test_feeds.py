from stance_pipeline.functions.ingest.core.feeds import is_valid_url, parse_feed
from tests.fakes import rss


def test_parse_feed_extracts_entries_in_order():
    content = rss(
        ("City council votes on transit levy", "https://news.example.com/levy"),
        ("School board delays start times", "https://news.example.com/schools"),
    )

    entries = parse_feed(content, "Example")

    assert [entry.url for entry in entries] == [
        "https://news.example.com/levy",
        "https://news.example.com/schools",
    ]
    assert entries[0].title == "City council votes on transit levy"
    assert entries[0].summary == "City council votes on transit levy summary"
    assert entries[0].published_at.startswith("2026-10-05T10:00:00")


def test_parse_feed_skips_entries_without_valid_links():
    content = rss(("No link here", "not-a-url"), ("Good", "https://news.example.com/good"))

    entries = parse_feed(content, "Example")

    assert [entry.url for entry in entries] == ["https://news.example.com/good"]


def test_parse_feed_respects_max_items():
    content = rss(*[(f"Story {i}", f"https://news.example.com/{i}") for i in range(5)])

    assert len(parse_feed(content, "Example", max_items=2)) == 2


def test_parse_feed_handles_garbage():
    assert parse_feed(b"<html>definitely not a feed", "Broken") == []


def test_is_valid_url():
    assert is_valid_url("https://example.com/feed")
    assert is_valid_url("http://example.com")
    assert not is_valid_url("ftp://example.com/file")
    assert not is_valid_url("")
    assert not is_valid_url(None)
