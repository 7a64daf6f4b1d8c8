"""Ingest stage core: feed parsing, source registry and queue writer."""

from .contracts import FeedEntry, IngestResult, SourceOutcome
from .feeds import parse_feed
from .logic import IngestLogic
from .sources import ItemWriter, SourceRegistry

__all__ = [
    "FeedEntry",
    "IngestResult",
    "SourceOutcome",
    "parse_feed",
    "IngestLogic",
    "ItemWriter",
    "SourceRegistry",
]
