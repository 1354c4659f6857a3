from __future__ import annotations

from functools import partial as bind
from typing import Any, Dict

from schemas.common import optional_bool, optional_email, optional_str, pick, require_id, require_str


_FIELDS = {
    "firstName": ("first_name", bind(require_str, max_length=100)),
    "lastName": ("last_name", bind(require_str, max_length=100)),
    "email": ("email", optional_email),
    "phone": ("phone", bind(optional_str, max_length=20)),
    "position": ("position", bind(optional_str, max_length=100)),
    "isPrimary": ("is_primary", optional_bool),
    "notes": ("notes", bind(optional_str, max_length=2000)),
}
_DEFAULTS = {"isPrimary": False}


def validate_contact_payload(payload: Dict[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    values = pick(payload, _FIELDS, partial=partial, defaults=_DEFAULTS)
    if not partial:
        values["organization_id"] = require_id(payload, "organizationId")
    if partial and not values:
        raise ValueError("No updatable fields provided")
    return values
