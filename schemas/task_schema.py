from __future__ import annotations

from typing import Any, Dict, Optional

from schemas.common import (
    normalize_enum,
    optional_datetime,
    optional_id,
    optional_str,
    require_str,
)
from services.crm_rbac import TASK_MANAGER_MUTABLE_FIELDS, TASK_PRIORITIES, TASK_STATUSES


def _normalize_lower(value: Optional[Any]) -> Optional[str]:
    normalized = normalize_enum(value)
    return normalized.lower() if normalized else None


def _status(payload: Dict[str, Any], field: str = "status") -> Optional[str]:
    status = _normalize_lower(payload.get(field))
    if status is not None and status not in TASK_STATUSES:
        raise ValueError("Invalid task status")
    return status


def _priority(payload: Dict[str, Any], field: str = "priority") -> Optional[str]:
    priority = _normalize_lower(payload.get(field))
    if priority is not None and priority not in TASK_PRIORITIES:
        raise ValueError("Invalid task priority")
    return priority


def normalize_status_filter(value: Optional[str]) -> Optional[str]:
    normalized = _normalize_lower(value)
    if not normalized or normalized == "all":
        return None
    if normalized not in TASK_STATUSES:
        raise ValueError("Invalid status filter")
    return normalized


def validate_task_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("Invalid JSON payload")
    return {
        "title": require_str(payload, "title", 255),
        "description": optional_str(payload, "description", 2000),
        "status": _status(payload) or "new",
        "priority": _priority(payload) or "medium",
        "dueDate": optional_datetime(payload, "dueDate"),
        "assignedUserId": optional_id(payload, "assignedUserId"),
        "organizationId": optional_id(payload, "organizationId"),
        "contactId": optional_id(payload, "contactId"),
    }


_UPDATE_PARSERS = {
    "title": lambda payload: require_str(payload, "title", 255),
    "description": lambda payload: optional_str(payload, "description", 2000),
    "status": _status,
    "priority": _priority,
    "dueDate": lambda payload: optional_datetime(payload, "dueDate"),
    "assignedUserId": lambda payload: optional_id(payload, "assignedUserId"),
    "organizationId": lambda payload: optional_id(payload, "organizationId"),
    "contactId": lambda payload: optional_id(payload, "contactId"),
}


def validate_task_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return the camelCase updates present in ``payload``; unknown keys are rejected."""
    if not isinstance(payload, dict):
        raise ValueError("Invalid JSON payload")
    unknown = sorted(set(payload) - TASK_MANAGER_MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown task fields: {', '.join(unknown)}")
    updates = {key: parser(payload) for key, parser in _UPDATE_PARSERS.items() if key in payload}
    # status and priority always hold a value; null means unchanged
    for key in ("status", "priority"):
        if key in updates and updates[key] is None:
            updates.pop(key)
    if not updates:
        raise ValueError("No updatable fields provided")
    return updates
