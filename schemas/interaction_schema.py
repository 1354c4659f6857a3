from __future__ import annotations

from datetime import datetime
from functools import partial as bind
from typing import Any, Dict, List

from schemas.common import (
    normalize_enum,
    optional_datetime,
    optional_enum,
    optional_id,
    optional_number,
    optional_str,
    pick,
    require_enum,
    require_id,
    require_str,
)

INTERACTION_TYPES = {
    "EMAIL",
    "PHONE_CALL",
    "IN_PERSON",
    "VIDEO_CALL",
    "DEMO",
    "TRADE_SHOW",
    "FOLLOW_UP",
    "PRESENTATION",
    "TASTING",
    "SITE_VISIT",
    "TRAINING",
    "SUPPORT",
}
INTERACTION_OUTCOMES = {
    "POSITIVE",
    "NEUTRAL",
    "NEGATIVE",
    "FOLLOW_UP_NEEDED",
    "PROPOSAL_REQUESTED",
    "DEMO_SCHEDULED",
    "ORDER_PLACED",
    "NO_INTEREST",
    "DECISION_PENDING",
}
MAX_BULK_INTERACTIONS = 50


def _date(payload: Dict[str, Any], field: str) -> datetime:
    return optional_datetime(payload, field) or datetime.utcnow()


_FIELDS = {
    "type": ("type", lambda payload, field: require_enum(payload, field, INTERACTION_TYPES)),
    "subject": ("subject", bind(require_str, max_length=255)),
    "description": ("description", bind(optional_str, max_length=2000)),
    "date": ("date", _date),
    "duration": ("duration", bind(optional_number, minimum=0, maximum=1440, integer=True)),
    "outcome": ("outcome", lambda payload, field: optional_enum(payload, field, INTERACTION_OUTCOMES)),
    "nextAction": ("next_action", bind(optional_str, max_length=500)),
    "organizationId": ("organization_id", require_id),
    "contactId": ("contact_id", optional_id),
}


def validate_interaction_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("Interaction must be a JSON object")
    return pick(payload, _FIELDS, partial=False)


def validate_bulk_payload(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Validate every entry of an ``interactions`` array, naming the bad index."""
    items = payload.get("interactions")
    if not isinstance(items, list) or not items:
        raise ValueError("interactions must be a non-empty array")
    if len(items) > MAX_BULK_INTERACTIONS:
        raise ValueError(f"interactions cannot contain more than {MAX_BULK_INTERACTIONS} items")
    validated: List[Dict[str, Any]] = []
    for index, item in enumerate(items):
        try:
            validated.append(validate_interaction_payload(item))
        except ValueError as exc:
            raise ValueError(f"interactions[{index}]: {exc}") from None
    return validated


def normalize_type_filter(value) -> str | None:
    normalized = normalize_enum(value)
    if normalized is not None and normalized not in INTERACTION_TYPES:
        raise ValueError("Invalid type filter")
    return normalized
