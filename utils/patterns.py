"""Pre-compiled regex patterns for the form builder tools.

All patterns are compiled once at module import.

Usage:
    from utils.patterns import LEVEL_ID, WHITESPACE

    if LEVEL_ID.match(level):
        ...
"""

import re

# Checkpoint level identifiers: "level0", "level1", ...
LEVEL_ID = re.compile(r'^level\d+$')

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Spreadsheet file extensions handled by SheetSource
WORKBOOK_EXTENSIONS = re.compile(r'\.(xlsx|xlsm)$', re.IGNORECASE)
