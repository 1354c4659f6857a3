from __future__ import annotations

from typing import Any, Dict

from schemas.common import optional_bool, optional_email, require_str
from services.crm_rbac import ROLES

MIN_PASSWORD_LENGTH = 8


def validate_registration(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    email = optional_email(payload, "email")
    if email is None:
        raise ValueError("email is required")
    password = payload.get("password")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if "confirmPassword" in payload and payload["confirmPassword"] != password:
        raise ValueError("Passwords do not match")
    return {"email": email, "name": require_str(payload, "name", 255), "password": password}


def validate_user_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Role and active-flag changes; anything else in the body is rejected."""
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    unknown = sorted(set(payload) - {"role", "isActive"})
    if unknown:
        raise ValueError(f"Unknown user fields: {', '.join(unknown)}")
    values: Dict[str, Any] = {}
    if payload.get("role") is not None:
        role = str(payload["role"]).strip().lower()
        if role not in ROLES:
            raise ValueError(f"role must be one of: {', '.join(ROLES)}")
        values["role"] = role
    active = optional_bool(payload, "isActive")
    if active is not None:
        values["is_active"] = active
    if not values:
        raise ValueError("Provide role or isActive")
    return values
