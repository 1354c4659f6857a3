import logging

import azure.functions as func

from function_app import app, pipeline
from repository.settings_repo import get_setting_by_key, list_settings, setting_to_dict, update_setting
from schemas.common import normalize_enum, optional_bool, optional_str
from services.rate_limiter import ADMIN, CRUD_READ
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import json_response, not_found, validation_error

logger = logging.getLogger(__name__)


def settings_handler(ctx: RequestContext) -> func.HttpResponse:
    category = normalize_enum(ctx.params.get("category"))
    db = SessionLocal()
    try:
        rows = list_settings(db, category=category)
        return json_response({"settings": [setting_to_dict(row) for row in rows], "count": len(rows)})
    finally:
        db.close()


def setting_update_handler(ctx: RequestContext) -> func.HttpResponse:
    body = ctx.body()
    try:
        value = optional_str(body, "value", 1000)
        label = optional_str(body, "label", 255)
        active = optional_bool(body, "active")
    except ValueError as exc:
        return validation_error(str(exc))
    if value is None and label is None and active is None:
        return validation_error("Provide value, label or active")

    db = SessionLocal()
    try:
        setting = get_setting_by_key(db, ctx.route_param("key"))
        if not setting:
            return not_found("Setting")
        update_setting(db, setting, value=value, label=label, active=active)
        db.commit()
        logger.info("Setting %s updated by %s", setting.key, ctx.actor.user_id)
        return json_response({"setting": setting_to_dict(setting)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_settings = pipeline.protect(settings_handler, route="settings", methods=["GET"], rate_limits=CRUD_READ)
handle_setting_update = pipeline.protect(
    setting_update_handler,
    route="settings/{key}",
    methods=["PATCH"],
    rate_limits=ADMIN,
    roles=["admin"],
)


@app.function_name(name="Settings")
@app.route(route="settings", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def settings(req: func.HttpRequest) -> func.HttpResponse:
    return handle_settings(req)


@app.function_name(name="SettingUpdate")
@app.route(route="settings/{key}", methods=["PATCH", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def setting_update(req: func.HttpRequest) -> func.HttpResponse:
    return handle_setting_update(req)
