from __future__ import annotations

import re
from typing import Any, Optional, Tuple

_UNSAFE_CHARS = re.compile(r"[<>'\"]")
_SEARCH_BREAKING = re.compile(r"[{}\[\]\\]")
_SEARCH_DISALLOWED = re.compile(r"[^\w\s@.\-]")
_TAGS = re.compile(r"<[^>]*>")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_input(value: Any, max_length: int = 1000) -> str:
    """Strip characters usable for markup injection, trim and cap the length."""
    text = _UNSAFE_CHARS.sub("", str(value or ""))
    return text.strip()[:max_length]


def sanitize_search_input(value: Any, max_length: int = 100) -> str:
    if not isinstance(value, str) or not value:
        return ""
    text = _TAGS.sub("", value)
    text = _SEARCH_BREAKING.sub("", text)
    text = _SEARCH_DISALLOWED.sub("", text)
    return text.strip()[:max_length]


def process_search_input(
    value: Optional[str],
    *,
    min_length: int = 2,
    max_length: int = 100,
) -> Tuple[str, bool]:
    """Return the sanitized query and whether it is long enough to search with."""
    query = sanitize_search_input(value, max_length)
    return query, len(query) >= min_length


def is_valid_email(value: Any) -> bool:
    text = str(value or "")
    if ".." in text:
        return False
    return bool(_EMAIL.match(text))
