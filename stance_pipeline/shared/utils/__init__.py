"""Shared utility functions."""

from .logging import setup_logging, StageLogger
from .env import load_env

__all__ = ["setup_logging", "StageLogger", "load_env"]
