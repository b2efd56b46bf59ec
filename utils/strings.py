"""String processing utilities for the form builder tools.

Grouping keys, header names and choice labels all pass through here so that
spreadsheet cells ("Bronx ", None, 12) turn into stable, comparable strings.
"""

from utils.patterns import WHITESPACE

# Stand-in for a blank grouping value.  It must differ from "" (the "no
# progress yet" cursor) and from any cell text.  cell_text() collapses every
# whitespace run to a single space, so a tab never survives into real text.
BLANK_KEY = "\t(blank)"


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Converts tabs, newlines, multiple spaces to single space.

    Example:
        "Claremont   Park\\n" -> "Claremont Park"
    """
    return WHITESPACE.sub(' ', s).strip()


def cell_text(val) -> str:
    """Render a spreadsheet cell as display text ('' for empty cells).

    Whole floats lose their trailing ``.0`` so that a numeric cell typed as
    ``12`` and read back as ``12.0`` still reads "12".
    """
    if val is None:
        return ''
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return normalize_whitespace(str(val))


def key_text(val) -> str:
    """Convert a grouping value into the opaque string key used for the tree.

    Blank cells map to BLANK_KEY.
    """
    text = cell_text(val)
    return text if text else BLANK_KEY
