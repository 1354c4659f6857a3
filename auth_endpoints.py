import logging
from datetime import datetime

import azure.functions as func

from crm_shared import find_user_by_email, issue_session_token, verify_password
from function_app import app, pipeline
from repository.users_repo import get_user, user_to_dict
from services.rate_limiter import AUTHENTICATION, CRUD_READ
from services.request_pipeline import RequestContext, log_security_event
from shared.db import SessionLocal
from utils.http import error_response, json_response, validation_error

logger = logging.getLogger(__name__)


def login_handler(ctx: RequestContext) -> func.HttpResponse:
    body = ctx.body()
    email = str(body.get("email") or "").strip()
    password = body.get("password")
    if not email or not isinstance(password, str) or not password:
        return validation_error("email and password are required")

    db = SessionLocal()
    try:
        user = find_user_by_email(db, email)
        if not user or not verify_password(password, user.password_hash):
            log_security_event("login_failed", ctx, email=email.lower())
            return error_response(status_code=401, message="Invalid credentials", code="invalid_credentials")
        if not user.is_active:
            log_security_event("login_inactive_account", ctx, userId=user.id)
            return error_response(status_code=403, message="Account inactive", code="account_inactive")

        token, expires_at = issue_session_token(user)
        if not token:
            logger.error("Session secret is not configured; cannot issue login token")
            return error_response(
                status_code=503,
                message="Sign-in is not configured",
                code="session_secret_missing",
            )
        user.last_login_at = datetime.utcnow()
        db.commit()
        logger.info("User %s signed in", user.id)
        return json_response({"token": token, "expiresAt": expires_at, "user": user_to_dict(user)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def me_handler(ctx: RequestContext) -> func.HttpResponse:
    db = SessionLocal()
    try:
        user = get_user(db, ctx.actor.user_id)
        if not user:
            return error_response(status_code=404, message="User not found", code="not_found")
        return json_response({"user": user_to_dict(user)})
    finally:
        db.close()


handle_login = pipeline.protect(
    login_handler,
    route="auth/login",
    methods=["POST"],
    rate_limits=AUTHENTICATION,
    require_auth=False,
)
handle_me = pipeline.protect(me_handler, route="auth/me", methods=["GET"], rate_limits=CRUD_READ)


@app.function_name(name="AuthLogin")
@app.route(route="auth/login", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_login(req: func.HttpRequest) -> func.HttpResponse:
    return handle_login(req)


@app.function_name(name="AuthMe")
@app.route(route="auth/me", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_me(req: func.HttpRequest) -> func.HttpResponse:
    return handle_me(req)
