"""
Input validation utilities for user data and API inputs.
"""

import re
from typing import Optional, Tuple

from utils.constants import MAX_PAGE_SIZE


def parse_pagination(
    page: Optional[str], limit: Optional[str], default_limit: int
) -> Tuple[int, int]:
    """
    Parse page/limit query parameters.

    Falls back to page 1 and ``default_limit`` for missing or
    non-numeric values, and caps the limit at MAX_PAGE_SIZE.
    """
    try:
        page_num = int(page) if page else 1
    except ValueError:
        page_num = 1
    try:
        limit_num = int(limit) if limit else default_limit
    except ValueError:
        limit_num = default_limit

    page_num = max(page_num, 1)
    if limit_num < 1:
        limit_num = default_limit
    return page_num, min(limit_num, MAX_PAGE_SIZE)


def sanitize_text(text: str, max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', str(text))

    # Trim whitespace
    sanitized = sanitized.strip()

    # Apply length limit if specified
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
