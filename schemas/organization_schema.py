from __future__ import annotations

from functools import partial as bind
from typing import Any, Dict, Optional

from schemas.common import (
    normalize_enum,
    optional_datetime,
    optional_email,
    optional_enum,
    optional_number,
    optional_str,
    pick,
    require_enum,
    require_str,
)

PRIORITIES = {"A", "B", "C", "D"}
SEGMENTS = {
    "FINE_DINING",
    "FAST_FOOD",
    "HEALTHCARE",
    "EDUCATION",
    "CORPORATE",
    "HOSPITALITY",
    "CASUAL_DINING",
    "QUICK_SERVICE",
    "CATERING",
    "RETIREMENT",
}
ORGANIZATION_TYPES = {"PROSPECT", "CUSTOMER", "INACTIVE"}
ORGANIZATION_STATUSES = {"ACTIVE", "INACTIVE", "LEAD"}


def _zip_code(payload: Dict[str, Any], field: str) -> Optional[str]:
    value = optional_str(payload, field, 10)
    if value and not value.replace("-", "").isdigit():
        raise ValueError("zipCode must contain digits only")
    return value


_FIELDS = {
    "name": ("name", bind(require_str, max_length=255)),
    "priority": ("priority", lambda payload, field: optional_enum(payload, field, PRIORITIES)),
    "segment": ("segment", lambda payload, field: require_enum(payload, field, SEGMENTS)),
    "type": ("type", lambda payload, field: optional_enum(payload, field, ORGANIZATION_TYPES)),
    "address": ("address", bind(optional_str, max_length=500)),
    "city": ("city", bind(optional_str, max_length=100)),
    "state": ("state", bind(optional_str, max_length=50)),
    "zipCode": ("zip_code", _zip_code),
    "phone": ("phone", bind(optional_str, max_length=20)),
    "email": ("email", optional_email),
    "website": ("website", bind(optional_str, max_length=255)),
    "notes": ("notes", bind(optional_str, max_length=2000)),
    "estimatedRevenue": ("estimated_revenue", bind(optional_number, minimum=0)),
    "employeeCount": ("employee_count", bind(optional_number, minimum=0, integer=True)),
    "nextFollowUpDate": ("next_follow_up_date", optional_datetime),
    "status": ("status", lambda payload, field: optional_enum(payload, field, ORGANIZATION_STATUSES)),
}
_DEFAULTS = {"priority": "C", "type": "PROSPECT", "status": "ACTIVE"}


def validate_organization_payload(payload: Dict[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    values = pick(payload, _FIELDS, partial=partial, defaults=_DEFAULTS)
    if partial and not values:
        raise ValueError("No updatable fields provided")
    return values


def normalize_organization_filters(params) -> Dict[str, Optional[str]]:
    priority = normalize_enum(params.get("priority"))
    if priority is not None and priority not in PRIORITIES:
        raise ValueError("Invalid priority filter")
    segment = normalize_enum(params.get("segment"))
    if segment is not None and segment not in SEGMENTS:
        raise ValueError("Invalid segment filter")
    status = normalize_enum(params.get("status")) or "ACTIVE"
    if status != "ALL" and status not in ORGANIZATION_STATUSES:
        raise ValueError("Invalid status filter")
    return {
        "priority": priority,
        "segment": segment,
        "status": None if status == "ALL" else status,
    }
