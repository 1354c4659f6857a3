from __future__ import annotations

from functools import partial as bind
from typing import Any, Dict, Optional

from schemas.common import (
    normalize_enum,
    optional_datetime,
    optional_enum,
    optional_id,
    optional_number,
    optional_str,
    pick,
    require_id,
    require_str,
)

STAGE_PROBABILITIES = {
    "PROSPECT": 10,
    "QUALIFIED": 25,
    "PROPOSAL": 50,
    "NEGOTIATION": 75,
    "CLOSED_WON": 100,
    "CLOSED_LOST": 0,
}
OPPORTUNITY_STAGES = set(STAGE_PROBABILITIES)


def _stage(payload: Dict[str, Any], field: str) -> Optional[str]:
    return optional_enum(payload, field, OPPORTUNITY_STAGES)


def _probability(payload: Dict[str, Any], field: str) -> Optional[int]:
    value = optional_number(payload, field, minimum=0, maximum=100, integer=True)
    return int(value) if value is not None else None


_FIELDS = {
    "name": ("name", bind(require_str, max_length=255)),
    "value": ("value", bind(optional_number, minimum=0)),
    "stage": ("stage", _stage),
    "probability": ("probability", _probability),
    "expectedCloseDate": ("expected_close_date", optional_datetime),
    "notes": ("notes", bind(optional_str, max_length=2000)),
    "reason": ("reason", bind(optional_str, max_length=1000)),
    "contactId": ("contact_id", optional_id),
}
_DEFAULTS = {"stage": "PROSPECT"}


def validate_opportunity_payload(payload: Dict[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """Validate an opportunity body.

    A stage given without an explicit probability takes the stage's default
    probability, both on create and on update.
    """
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    values = pick(payload, _FIELDS, partial=partial, defaults=_DEFAULTS)
    if not partial:
        values["organization_id"] = require_id(payload, "organizationId")
    if partial and not values:
        raise ValueError("No updatable fields provided")
    if values.get("probability") is None and ("stage" in values):
        values["probability"] = STAGE_PROBABILITIES[values["stage"]]
    elif "probability" in values and values["probability"] is None:
        values.pop("probability")
    return values


def normalize_stage_filter(value) -> Optional[str]:
    normalized = normalize_enum(value)
    if normalized is not None and normalized not in OPPORTUNITY_STAGES:
        raise ValueError("Invalid stage filter")
    return normalized
