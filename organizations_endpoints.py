import logging

import azure.functions as func

from function_app import app, pipeline
from repository.organizations_repo import (
    count_contacts,
    create_organization,
    delete_organization,
    get_organization,
    list_organizations,
    organization_to_dict,
    update_organization,
)
from schemas.organization_schema import normalize_organization_filters, validate_organization_payload
from services.crm_rbac import can_delete_records
from services.rate_limiter import CRUD_LIMITS
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import forbidden, get_limit, json_response, not_found, validation_error
from utils.sanitize import process_search_input

logger = logging.getLogger(__name__)


def _list_organizations(ctx: RequestContext) -> func.HttpResponse:
    try:
        filters = normalize_organization_filters(ctx.params)
    except ValueError as exc:
        return validation_error(str(exc))
    query = None
    raw_query = ctx.params.get("q")
    if raw_query:
        query, is_valid = process_search_input(raw_query)
        if not is_valid:
            return validation_error("Search query must be at least 2 characters")

    db = SessionLocal()
    try:
        rows = list_organizations(db, query=query, limit=get_limit(ctx.req), **filters)
        return json_response({"organizations": [organization_to_dict(org) for org in rows], "count": len(rows)})
    finally:
        db.close()


def _create_organization(ctx: RequestContext) -> func.HttpResponse:
    try:
        values = validate_organization_payload(ctx.body())
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        org = create_organization(db, values)
        db.commit()
        logger.info("Organization %s created by %s", org.id, ctx.actor.user_id)
        return json_response({"organization": organization_to_dict(org, contact_count=0)}, status_code=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def organizations_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _create_organization(ctx)
    return _list_organizations(ctx)


def organization_detail_handler(ctx: RequestContext) -> func.HttpResponse:
    org_id = ctx.route_param("org_id")
    if ctx.method == "DELETE" and not can_delete_records(ctx.actor.role):
        return forbidden("Only managers can delete organizations")

    db = SessionLocal()
    try:
        org = get_organization(db, org_id)
        if not org:
            return not_found("Organization")

        if ctx.method == "GET":
            return json_response(
                {"organization": organization_to_dict(org, contact_count=count_contacts(db, org.id))}
            )

        if ctx.method == "DELETE":
            delete_organization(db, org)
            db.commit()
            logger.info("Organization %s deleted by %s", org_id, ctx.actor.user_id)
            return json_response({"deleted": True, "id": org_id})

        try:
            values = validate_organization_payload(ctx.body(), partial=True)
        except ValueError as exc:
            return validation_error(str(exc))
        update_organization(db, org, values)
        db.commit()
        return json_response({"organization": organization_to_dict(org, contact_count=count_contacts(db, org.id))})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_organizations = pipeline.protect(
    organizations_handler,
    route="organizations",
    methods=["GET", "POST"],
    rate_limits=CRUD_LIMITS,
)
handle_organization_detail = pipeline.protect(
    organization_detail_handler,
    route="organizations/{org_id}",
    methods=["GET", "PATCH", "DELETE"],
    rate_limits=CRUD_LIMITS,
)


@app.function_name(name="Organizations")
@app.route(route="organizations", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def organizations(req: func.HttpRequest) -> func.HttpResponse:
    return handle_organizations(req)


@app.function_name(name="OrganizationDetail")
@app.route(
    route="organizations/{org_id}",
    methods=["GET", "PATCH", "DELETE", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def organization_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_organization_detail(req)
