from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_

from shared.db import Task

_COLUMNS = {
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "dueDate": "due_date",
    "assignedUserId": "assigned_user_id",
    "organizationId": "organization_id",
    "contactId": "contact_id",
}


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    return value.isoformat()


def task_to_dict(task: Task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "dueDate": _format_dt(task.due_date),
        "organizationId": task.organization_id,
        "contactId": task.contact_id,
        "assignedUserId": task.assigned_user_id,
        "createdByUserId": task.created_by_user_id,
        "completedAt": _format_dt(task.completed_at),
        "createdAt": _format_dt(task.created_at),
        "updatedAt": _format_dt(task.updated_at),
    }


def create_task(db, payload: Dict[str, Any], *, created_by_user_id: str) -> Task:
    values = {column: payload.get(key) for key, column in _COLUMNS.items()}
    if not values.get("assigned_user_id"):
        values["assigned_user_id"] = created_by_user_id
    task = Task(created_by_user_id=created_by_user_id, **values)
    if task.status == "completed":
        task.completed_at = datetime.utcnow()
    db.add(task)
    db.flush()
    return task


def get_task(db, task_id: str) -> Optional[Task]:
    if not task_id:
        return None
    return db.query(Task).filter_by(id=task_id).one_or_none()


def list_tasks(
    db,
    *,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
) -> List[Task]:
    """List tasks, restricted to those assigned to or created by ``user_id`` when given."""
    q = db.query(Task)
    if user_id:
        q = q.filter(or_(Task.assigned_user_id == user_id, Task.created_by_user_id == user_id))
    if status:
        q = q.filter(Task.status == status)
    # Tasks without a due date sort last.
    return (
        q.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
        .limit(limit)
        .all()
    )


def update_task(db, task: Task, updates: Dict[str, Any]) -> Task:
    for key, value in updates.items():
        setattr(task, _COLUMNS[key], value)
    if "status" in updates:
        task.completed_at = datetime.utcnow() if task.status == "completed" else None
    task.updated_at = datetime.utcnow()
    db.flush()
    return task


def delete_task(db, task: Task) -> None:
    db.delete(task)
    db.flush()
