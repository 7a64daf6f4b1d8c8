"""
RSS feed parsing.

Turns a fetched feed document into ``FeedEntry`` records ready for the
ingest queue.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

import feedparser
from dateutil import parser as date_parser
import logging

from .contracts import FeedEntry

logger = logging.getLogger(__name__)

# Prevent memory issues with huge feeds
MAX_ENTRIES_TO_PROCESS = 1000


def is_valid_url(url: Optional[str]) -> bool:
    """Validate an http(s) URL."""
    if not url:
        return False
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def parse_feed(content: bytes | str, source_name: str, max_items: int = 25) -> List[FeedEntry]:
    """
    Parse an RSS/Atom document.

    Args:
        content: Raw feed body
        source_name: Source label used in logs
        max_items: Maximum entries to keep

    Returns:
        Entries with a valid link, in feed order
    """
    feed = feedparser.parse(content)

    if getattr(feed, "bozo", False):
        logger.warning(
            f"RSS feed parsing warnings for {source_name}: {getattr(feed, 'bozo_exception', 'Unknown')}"
        )

    entries = getattr(feed, "entries", None) or []
    if not entries:
        logger.info(f"RSS feed {source_name} contains no entries")
        return []

    items: List[FeedEntry] = []
    for entry in entries[:MAX_ENTRIES_TO_PROCESS]:
        item = _parse_entry(entry)
        if item is None:
            continue
        items.append(item)
        if max_items and len(items) >= max_items:
            break

    logger.debug(f"Parsed {len(items)} entries from {source_name}")
    return items


def _parse_entry(entry) -> Optional[FeedEntry]:
    url = (entry.get("link") or "").strip()
    if not is_valid_url(url):
        logger.debug("RSS entry missing valid link, skipping")
        return None

    title = (entry.get("title") or "").strip()
    summary = (entry.get("summary") or entry.get("description") or "").strip()

    return FeedEntry(
        url=url,
        title=title or url,
        summary=summary[:2000] or None,
        published_at=_published_at(entry),
    )


def _published_at(entry) -> Optional[str]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        try:
            return datetime(*parsed[:6], tzinfo=timezone.utc).isoformat()
        except (TypeError, ValueError):
            pass

    # Try alternative date fields
    for date_field in ("published", "updated", "created"):
        date_str = entry.get(date_field)
        if not date_str:
            continue
        try:
            value = date_parser.parse(date_str)
        except (ValueError, TypeError, OverflowError):
            continue
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    return None
