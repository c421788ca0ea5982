"""
Shared Utility Functions

Common helper functions used across multiple modules.
"""

import re
import logging
from typing import Any, Iterable, List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def flatten_list(items: Any) -> List[str]:
    """
    Flatten a potentially nested list to a single-level list of strings.

    Handles various formats:
    - Nested lists: [["a", "b"]] → ["a", "b"]
    - Flat lists: ["a", "b"] → ["a", "b"]
    - Single string: "a" → ["a"]
    - None/empty: None → []

    Args:
        items: Any value that could be a list, nested list, or string

    Returns:
        Flat list of strings
    """
    if not items:
        return []

    if isinstance(items, str):
        return [items]

    if not isinstance(items, list):
        return [str(items)]

    result = []
    for item in items:
        if isinstance(item, list):
            result.extend(str(subitem) for subitem in item)
        else:
            result.append(str(item))

    return result


def is_valid_url(value: str) -> bool:
    """Check that a string is an absolute http(s) URL."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_url_input(text: str) -> List[str]:
    """
    Parse free-text URL input.

    URLs may be separated by newlines or commas. Invalid entries are
    dropped and duplicates removed, keeping the first occurrence.

    Args:
        text: Raw operator input

    Returns:
        Ordered list of valid URLs
    """
    if not text:
        return []

    urls = []
    for candidate in re.split(r"[\n,]", text):
        candidate = candidate.strip()
        if not candidate:
            continue
        if not is_valid_url(candidate):
            logger.debug(f"Skipping invalid URL: {candidate}")
            continue
        urls.append(candidate)

    return dedupe(urls)


def normalize_url(url: str) -> str:
    """Normalize a URL for comparison: lowercase, no trailing slashes."""
    return url.strip().lower().rstrip("/")


def dedupe(items: Iterable[str]) -> List[str]:
    """Remove duplicates while preserving order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def truncate(text: str, max_chars: int) -> str:
    """Truncate text to max_chars, marking the cut."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n[... truncated ...]"
