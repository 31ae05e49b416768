"""Utility functions for the noise filter."""

from .logging import get_logger, set_level
from .config import load_config

__all__ = ["get_logger", "set_level", "load_config"]
