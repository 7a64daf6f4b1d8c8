"""Shared database utilities."""

from .connection import SupabaseConfig, normalize_url
from .rest import RestClient, RestError, in_filter

__all__ = ["SupabaseConfig", "normalize_url", "RestClient", "RestError", "in_filter"]
