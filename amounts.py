# amounts.py - Token amount arithmetic
# - Amounts are plain Python ints (unbounded precision, never floats)
# - Stored as canonical decimal text in SQLite
# - parse() is lenient: malformed text counts as zero and is logged

import logging
import re
from typing import Any

logger = logging.getLogger("netflow_indexer.amounts")

ZERO = 0

_DECIMAL_RE = re.compile(r"[0-9]+")


def parse(text: Any) -> int:
    """Parse a non-negative decimal string. Returns 0 on malformed input."""
    if not isinstance(text, str):
        logger.warning(f"Amount is not a string ({type(text).__name__}); treating as 0")
        return ZERO
    candidate = text.strip()
    # fullmatch keeps out signs, underscores and non-ASCII digits that int() would accept
    if not _DECIMAL_RE.fullmatch(candidate):
        logger.warning(f"Unparsable amount {text!r}; treating as 0")
        return ZERO
    return int(candidate)


def add(a: int, b: int) -> int:
    return a + b


def saturating_sub(a: int, b: int) -> int:
    return a - b if a >= b else ZERO


def to_decimal_string(a: int) -> str:
    if a < 0:
        raise ValueError(f"Amounts are non-negative, got {a}")
    return str(a)
