"""
Input sanitization utilities for eco-action API endpoints.

Free text is stored as the student or teacher typed it, minus control characters
and excess length. It is not HTML-escaped here: the verifier must see the real
text, and responses are JSON. Clients escape when they render it.
"""

import re
from typing import Optional
import logging

DESCRIPTION_MAX_LENGTH = 2000
SHORT_TEXT_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 1000

_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


def sanitize_string(input_str: str, max_length: Optional[int] = None) -> str:
    """
    Sanitize a string input by:
    1. Stripping leading/trailing whitespace
    2. Removing control characters (tab, newline and carriage return are kept)
    3. Truncating to max_length if specified

    Args:
        input_str: The input string to sanitize
        max_length: Optional maximum length for truncation

    Returns:
        Sanitized string
    """
    if not isinstance(input_str, str):
        if input_str is None:
            return ""
        return str(input_str)

    sanitized = _CONTROL_CHARS_RE.sub('', input_str.strip())

    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        logging.warning(f"Input truncated from {len(input_str)} to {max_length} characters")

    return sanitized


def sanitize_optional(input_str: Optional[str], max_length: Optional[int] = SHORT_TEXT_MAX_LENGTH) -> Optional[str]:
    """Like sanitize_string, but keeps None and collapses blank input to None."""
    if input_str is None:
        return None
    sanitized = sanitize_string(input_str, max_length)
    return sanitized or None
