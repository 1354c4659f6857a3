import logging

import azure.functions as func
from sqlalchemy.exc import IntegrityError

from crm_shared import find_user_by_email, hash_password
from function_app import app, pipeline
from repository.users_repo import create_user, get_user, list_users, update_user, user_to_dict
from schemas.user_schema import validate_registration, validate_user_update
from services.crm_rbac import can_manage_users
from services.rate_limiter import ADMIN, AUTHENTICATION, CRUD_READ
from services.request_pipeline import RequestContext, log_security_event
from shared.config import get_flag_setting
from shared.db import SessionLocal
from utils.http import error_response, forbidden, json_response, not_found, validation_error

logger = logging.getLogger(__name__)


def _conflict() -> func.HttpResponse:
    return error_response(status_code=409, message="A user with this email already exists", code="conflict")


def _register(ctx: RequestContext) -> func.HttpResponse:
    try:
        values = validate_registration(ctx.body())
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        if find_user_by_email(db, values["email"]):
            return _conflict()
        user = create_user(
            db,
            email=values["email"],
            name=values["name"],
            password_hash=hash_password(values["password"]),
            activate_members=get_flag_setting("USER_SIGNUP_AUTO_ACTIVATE", False),
        )
        db.commit()
        logger.info("Registered user %s as %s (active=%s)", user.id, user.role, user.is_active)
        return json_response({"user": user_to_dict(user)}, status_code=201)
    except IntegrityError:
        db.rollback()
        return _conflict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _list_users(ctx: RequestContext) -> func.HttpResponse:
    include_inactive = str(ctx.params.get("status") or "").strip().lower() != "active"
    db = SessionLocal()
    try:
        rows = list_users(db, include_inactive=include_inactive)
        return json_response({"users": [user_to_dict(row) for row in rows], "count": len(rows)})
    finally:
        db.close()


def users_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _register(ctx)
    return _list_users(ctx)


def user_detail_handler(ctx: RequestContext) -> func.HttpResponse:
    actor = ctx.actor
    user_id = ctx.route_param("user_id")
    if ctx.method == "GET" and user_id != actor.user_id and not can_manage_users(actor.role):
        return not_found("User")
    if ctx.method == "PATCH" and not can_manage_users(actor.role):
        log_security_event("user_update_denied", ctx, userId=actor.user_id, targetUserId=user_id)
        return forbidden("Only admins can change users")

    db = SessionLocal()
    try:
        user = get_user(db, user_id)
        if not user:
            return not_found("User")
        if ctx.method == "GET":
            return json_response({"user": user_to_dict(user)})

        try:
            values = validate_user_update(ctx.body())
        except ValueError as exc:
            return validation_error(str(exc))
        if user.id == actor.user_id and (values.get("is_active") is False or values.get("role", "admin") != "admin"):
            return validation_error("Admins cannot deactivate or demote their own account")
        update_user(db, user, values)
        db.commit()
        log_security_event("user_updated", ctx, userId=actor.user_id, targetUserId=user.id, changes=sorted(values))
        return json_response({"user": user_to_dict(user)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_users = pipeline.protect(
    users_handler,
    route="users",
    methods=["GET", "POST"],
    rate_limits={"GET": CRUD_READ, "POST": AUTHENTICATION},
    roles=["admin"],
    public_methods=["POST"],
)
handle_user_detail = pipeline.protect(
    user_detail_handler,
    route="users/{user_id}",
    methods=["GET", "PATCH"],
    rate_limits={"GET": CRUD_READ, "PATCH": ADMIN},
)


@app.function_name(name="Users")
@app.route(route="users", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def users(req: func.HttpRequest) -> func.HttpResponse:
    return handle_users(req)


@app.function_name(name="UserDetail")
@app.route(route="users/{user_id}", methods=["GET", "PATCH", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def user_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_user_detail(req)
