"""Shared utilities for the form builder tools."""

# Common utilities
from utils.common import make_id, get_connection

# Pattern definitions
from utils.patterns import LEVEL_ID, WHITESPACE, WORKBOOK_EXTENSIONS

# String utilities
from utils.strings import BLANK_KEY, normalize_whitespace, cell_text, key_text

# Configuration
from utils.config import Config, BuilderConfig, DatabaseConfig

# Database utilities
from utils.database import init_pragmas, create_database

__all__ = [
    "make_id",
    "get_connection",
    "LEVEL_ID",
    "WHITESPACE",
    "WORKBOOK_EXTENSIONS",
    "BLANK_KEY",
    "normalize_whitespace",
    "cell_text",
    "key_text",
    "Config",
    "BuilderConfig",
    "DatabaseConfig",
    "init_pragmas",
    "create_database",
]
