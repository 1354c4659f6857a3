from __future__ import annotations

from typing import Any, Dict, Tuple

ROLES = ("admin", "manager", "user")
TASK_STATUSES = ["new", "in_progress", "blocked", "completed"]
TASK_PRIORITIES = ["low", "medium", "high"]
TASK_ASSIGNEE_MUTABLE_FIELDS = {
    "status",
    "description",
}
TASK_MANAGER_MUTABLE_FIELDS = {
    "title",
    "description",
    "status",
    "priority",
    "dueDate",
    "assignedUserId",
    "organizationId",
    "contactId",
}


def normalize_role(raw_role: str | None) -> str:
    role = str(raw_role or "").strip().lower()
    if role in {"admin", "owner"}:
        return "admin"
    if role in {"manager", "lead"}:
        return "manager"
    return "user"


def can_manage_all(role: str) -> bool:
    return role in {"admin", "manager"}


def can_delete_records(role: str) -> bool:
    return can_manage_all(role)


def can_edit_settings(role: str) -> bool:
    return role == "admin"


def can_manage_users(role: str) -> bool:
    return role == "admin"


def can_view_task(role: str, actor_user_id: str | None, task: Dict[str, Any]) -> bool:
    if can_manage_all(role):
        return True
    if not actor_user_id:
        return False
    return actor_user_id in {task.get("assignedUserId"), task.get("createdByUserId")}


def can_patch_task(
    role: str,
    actor_user_id: str | None,
    before: Dict[str, Any],
    updates: Dict[str, Any],
) -> Tuple[bool, str | None]:
    if can_manage_all(role):
        return True, None
    if not actor_user_id or before.get("assignedUserId") != actor_user_id:
        return False, "forbidden"
    forbidden_fields = set(updates.keys()) - TASK_ASSIGNEE_MUTABLE_FIELDS
    if forbidden_fields:
        return False, f"assignee_cannot_update_fields:{','.join(sorted(forbidden_fields))}"
    return True, None

