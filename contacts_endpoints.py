import logging

import azure.functions as func

from function_app import app, pipeline
from repository.contacts_repo import (
    contact_to_dict,
    create_contact,
    delete_contact,
    get_contact,
    list_contacts_for_organization,
    update_contact,
)
from repository.organizations_repo import get_organization
from schemas.contact_schema import validate_contact_payload
from services.crm_rbac import can_delete_records
from services.rate_limiter import CRUD_LIMITS, CRUD_READ
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import forbidden, get_limit, json_response, not_found, validation_error

logger = logging.getLogger(__name__)


def _list_for_organization(ctx: RequestContext, org_id: str) -> func.HttpResponse:
    if not org_id:
        return validation_error("organizationId is required")
    db = SessionLocal()
    try:
        rows = list_contacts_for_organization(db, org_id, limit=get_limit(ctx.req))
        return json_response({"contacts": [contact_to_dict(contact) for contact in rows], "count": len(rows)})
    finally:
        db.close()


def _create_contact(ctx: RequestContext) -> func.HttpResponse:
    try:
        values = validate_contact_payload(ctx.body())
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        if not get_organization(db, values["organization_id"]):
            return not_found("Organization")
        contact = create_contact(db, values)
        db.commit()
        logger.info("Contact %s created for organization %s", contact.id, contact.organization_id)
        return json_response({"contact": contact_to_dict(contact)}, status_code=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def contacts_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _create_contact(ctx)
    return _list_for_organization(ctx, str(ctx.params.get("organizationId") or "").strip())


def contacts_by_organization_handler(ctx: RequestContext) -> func.HttpResponse:
    return _list_for_organization(ctx, ctx.route_param("org_id"))


def contact_detail_handler(ctx: RequestContext) -> func.HttpResponse:
    contact_id = ctx.route_param("contact_id")
    if ctx.method == "DELETE" and not can_delete_records(ctx.actor.role):
        return forbidden("Only managers can delete contacts")

    db = SessionLocal()
    try:
        contact = get_contact(db, contact_id)
        if not contact:
            return not_found("Contact")
        if ctx.method == "GET":
            return json_response({"contact": contact_to_dict(contact)})
        if ctx.method == "DELETE":
            delete_contact(db, contact)
            db.commit()
            return json_response({"deleted": True, "id": contact_id})

        try:
            values = validate_contact_payload(ctx.body(), partial=True)
        except ValueError as exc:
            return validation_error(str(exc))
        update_contact(db, contact, values)
        db.commit()
        return json_response({"contact": contact_to_dict(contact)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_contacts = pipeline.protect(
    contacts_handler,
    route="contacts",
    methods=["GET", "POST"],
    rate_limits=CRUD_LIMITS,
)
handle_contacts_by_organization = pipeline.protect(
    contacts_by_organization_handler,
    route="contacts/by-organization/{org_id}",
    methods=["GET"],
    rate_limits=CRUD_READ,
)
handle_contact_detail = pipeline.protect(
    contact_detail_handler,
    route="contacts/{contact_id}",
    methods=["GET", "PATCH", "DELETE"],
    rate_limits=CRUD_LIMITS,
)


@app.function_name(name="Contacts")
@app.route(route="contacts", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def contacts(req: func.HttpRequest) -> func.HttpResponse:
    return handle_contacts(req)


@app.function_name(name="ContactsByOrganization")
@app.route(
    route="contacts/by-organization/{org_id}",
    methods=["GET", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def contacts_by_organization(req: func.HttpRequest) -> func.HttpResponse:
    return handle_contacts_by_organization(req)


@app.function_name(name="ContactDetail")
@app.route(
    route="contacts/{contact_id}",
    methods=["GET", "PATCH", "DELETE", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def contact_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_contact_detail(req)
