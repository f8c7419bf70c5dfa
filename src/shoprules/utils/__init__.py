"""
Utilities Module

This module contains shared utilities and helper functions.
"""

from .config import Config
from .logging import get_logger, setup_logging
from .mongo import MongoRepository

__all__ = ["Config", "MongoRepository", "get_logger", "setup_logging"]
