from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from utils.sanitize import is_valid_email, sanitize_input

_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-]{1,64}$")


def normalize_enum(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip().upper()
    if not normalized:
        return None
    return re.sub(r"[\s-]+", "_", normalized)


def require_str(payload: Dict[str, Any], field: str, max_length: int = 255) -> str:
    value = payload.get(field)
    if value is None:
        raise ValueError(f"{field} is required")
    text = sanitize_input(value, max_length)
    if not text:
        raise ValueError(f"{field} is required")
    return text


def optional_str(payload: Dict[str, Any], field: str, max_length: int = 1000) -> Optional[str]:
    value = payload.get(field)
    if value is None:
        return None
    text = sanitize_input(value, max_length)
    return text or None


def optional_email(payload: Dict[str, Any], field: str = "email") -> Optional[str]:
    value = payload.get(field)
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip().lower()
    if len(text) > 255 or not is_valid_email(text):
        raise ValueError(f"{field} must be a valid email address")
    return text


def optional_enum(payload: Dict[str, Any], field: str, allowed: Iterable[str]) -> Optional[str]:
    normalized = normalize_enum(payload.get(field))
    if normalized is None:
        return None
    if normalized not in set(allowed):
        raise ValueError(f"Invalid {field}")
    return normalized


def require_enum(payload: Dict[str, Any], field: str, allowed: Iterable[str]) -> str:
    normalized = optional_enum(payload, field, allowed)
    if normalized is None:
        raise ValueError(f"{field} is required")
    return normalized


def optional_number(
    payload: Dict[str, Any],
    field: str,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    integer: bool = False,
) -> Optional[float]:
    value = payload.get(field)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        number = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number") from None
    if integer and isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValueError(f"{field} must be at least {minimum:g}")
    if maximum is not None and number > maximum:
        raise ValueError(f"{field} must be at most {maximum:g}")
    return number


def optional_bool(payload: Dict[str, Any], field: str) -> Optional[bool]:
    value = payload.get(field)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    raise ValueError(f"{field} must be a boolean")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into a naive UTC datetime, the way rows are stored."""
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def optional_datetime(payload: Dict[str, Any], field: str) -> Optional[datetime]:
    value = payload.get(field)
    if value is None or value == "":
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"{field} must be an ISO-8601 date")
    return parsed


def optional_id(payload: Dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip()
    if not _ID_PATTERN.match(text):
        raise ValueError(f"{field} is not a valid id")
    return text


def require_id(payload: Dict[str, Any], field: str) -> str:
    text = optional_id(payload, field)
    if text is None:
        raise ValueError(f"{field} is required")
    return text


def pick(
    payload: Dict[str, Any],
    fields: Dict[str, Any],
    *,
    partial: bool,
    defaults: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run each field parser and map camelCase input to column names.

    ``fields`` maps input key to ``(column, parser)``. With ``partial`` only the
    keys present in ``payload`` are parsed, which is how PATCH bodies work.

    ``defaults`` maps input key to the value used on create when the field is
    missing or null. On PATCH a null for such a field leaves the stored value
    alone.
    """
    defaults = defaults or {}
    out: Dict[str, Any] = {}
    for key, (column, parser) in fields.items():
        if partial and key not in payload:
            continue
        value = parser(payload, key)
        if value is None and key in defaults:
            if partial:
                continue
            value = defaults[key]
        out[column] = value
    return out
