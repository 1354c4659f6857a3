import logging
from typing import Optional

import azure.functions as func

from function_app import app, pipeline
from repository.contacts_repo import get_contact
from repository.organizations_repo import get_organization
from repository.tasks_repo import create_task, delete_task, get_task, list_tasks, task_to_dict, update_task
from repository.users_repo import get_user
from schemas.task_schema import normalize_status_filter, validate_task_create, validate_task_update
from services.crm_rbac import can_manage_all, can_patch_task, can_view_task
from services.rate_limiter import CRUD_LIMITS
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import error_response, forbidden, get_limit, json_response, not_found, validation_error

logger = logging.getLogger(__name__)


def _list_tasks(ctx: RequestContext) -> func.HttpResponse:
    actor = ctx.actor
    scope = str(ctx.params.get("assignee") or "").strip().lower()
    if scope == "all" and not can_manage_all(actor.role):
        return forbidden("Only managers can list every task")
    try:
        status = normalize_status_filter(ctx.params.get("status"))
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        rows = list_tasks(
            db,
            user_id=None if scope == "all" else actor.user_id,
            status=status,
            limit=get_limit(ctx.req),
        )
        return json_response({"tasks": [task_to_dict(task) for task in rows], "count": len(rows)})
    finally:
        db.close()


def _missing_reference(db, values) -> Optional[func.HttpResponse]:
    """404 for the first user, organization or contact id that does not exist."""
    if values.get("assignedUserId") and not get_user(db, values["assignedUserId"]):
        return not_found("User")
    if values.get("organizationId") and not get_organization(db, values["organizationId"]):
        return not_found("Organization")
    if values.get("contactId") and not get_contact(db, values["contactId"]):
        return not_found("Contact")
    return None


def _create_task(ctx: RequestContext) -> func.HttpResponse:
    actor = ctx.actor
    try:
        payload = validate_task_create(ctx.body())
    except ValueError as exc:
        return validation_error(str(exc))
    assignee = payload.get("assignedUserId")
    if assignee and assignee != actor.user_id and not can_manage_all(actor.role):
        return forbidden("Only managers can assign tasks to other users")

    db = SessionLocal()
    try:
        missing = _missing_reference(db, payload)
        if missing is not None:
            return missing
        task = create_task(db, payload, created_by_user_id=actor.user_id)
        db.commit()
        logger.info("Task %s created by %s", task.id, actor.user_id)
        return json_response({"task": task_to_dict(task)}, status_code=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def tasks_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _create_task(ctx)
    return _list_tasks(ctx)


def task_detail_handler(ctx: RequestContext) -> func.HttpResponse:
    actor = ctx.actor
    db = SessionLocal()
    try:
        task = get_task(db, ctx.route_param("task_id"))
        if not task:
            return not_found("Task")
        before = task_to_dict(task)
        if not can_view_task(actor.role, actor.user_id, before):
            return not_found("Task")

        if ctx.method == "GET":
            return json_response({"task": before})

        if ctx.method == "DELETE":
            if not can_manage_all(actor.role) and before["createdByUserId"] != actor.user_id:
                return forbidden("Only the creator or a manager can delete a task")
            delete_task(db, task)
            db.commit()
            return json_response({"deleted": True, "id": before["id"]})

        try:
            updates = validate_task_update(ctx.body())
        except ValueError as exc:
            return validation_error(str(exc))
        allowed, reason = can_patch_task(actor.role, actor.user_id, before, updates)
        if not allowed:
            return error_response(status_code=403, message="forbidden", code=reason or "forbidden")
        missing = _missing_reference(db, updates)
        if missing is not None:
            return missing
        update_task(db, task, updates)
        db.commit()
        if before["status"] != task.status:
            logger.info("Task %s status %s -> %s", task.id, before["status"], task.status)
        return json_response({"task": task_to_dict(task)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_tasks = pipeline.protect(tasks_handler, route="tasks", methods=["GET", "POST"], rate_limits=CRUD_LIMITS)
handle_task_detail = pipeline.protect(
    task_detail_handler,
    route="tasks/{task_id}",
    methods=["GET", "PATCH", "DELETE"],
    rate_limits=CRUD_LIMITS,
)


@app.function_name(name="Tasks")
@app.route(route="tasks", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def tasks(req: func.HttpRequest) -> func.HttpResponse:
    return handle_tasks(req)


@app.function_name(name="TaskDetail")
@app.route(
    route="tasks/{task_id}",
    methods=["GET", "PATCH", "DELETE", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def task_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_task_detail(req)
