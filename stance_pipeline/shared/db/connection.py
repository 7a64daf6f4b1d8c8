"""Shared Supabase connection settings.

This module resolves the project URL and service credential used by every
stage, both for PostgREST access to the pipeline tables and for the
db-vs-external classification of outbound calls.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

URL_VARS = ("PROJECT_URL", "SUPABASE_URL")
KEY_VARS = ("SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY")


def normalize_url(url: Optional[str]) -> str:
    """Strip whitespace and trailing slashes from a project URL."""
    return (url or "").strip().rstrip("/")


@dataclass
class SupabaseConfig:
    """Configuration for Supabase connection.

    Attributes:
        url: Supabase project URL (no trailing slash)
        key: Service role key
        schema: Database schema to use (default: public)
    """
    url: str
    key: str
    schema: str = "public"

    def __post_init__(self) -> None:
        self.url = normalize_url(self.url)

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"
