import logging

import azure.functions as func

from function_app import app, pipeline
from repository.contacts_repo import get_contact
from repository.opportunities_repo import (
    create_opportunity,
    deactivate_opportunity,
    get_opportunity,
    list_opportunities,
    opportunity_to_dict,
    update_opportunity,
)
from repository.organizations_repo import get_organization
from schemas.opportunity_schema import normalize_stage_filter, validate_opportunity_payload
from services.rate_limiter import CRUD_LIMITS
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import get_limit, json_response, not_found, validation_error

logger = logging.getLogger(__name__)


def _list_opportunities(ctx: RequestContext) -> func.HttpResponse:
    try:
        stage = normalize_stage_filter(ctx.params.get("stage"))
    except ValueError as exc:
        return validation_error(str(exc))
    include_inactive = str(ctx.params.get("includeInactive") or "").strip().lower() == "true"

    db = SessionLocal()
    try:
        rows = list_opportunities(
            db,
            organization_id=str(ctx.params.get("organizationId") or "").strip() or None,
            stage=stage,
            include_inactive=include_inactive,
            limit=get_limit(ctx.req),
        )
        return json_response({"opportunities": [opportunity_to_dict(row) for row in rows], "count": len(rows)})
    finally:
        db.close()


def _create_opportunity(ctx: RequestContext) -> func.HttpResponse:
    try:
        values = validate_opportunity_payload(ctx.body())
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        if not get_organization(db, values["organization_id"]):
            return not_found("Organization")
        if values.get("contact_id") and not get_contact(db, values["contact_id"]):
            return not_found("Contact")
        opportunity = create_opportunity(db, values)
        db.commit()
        logger.info("Opportunity %s created at stage %s", opportunity.id, opportunity.stage)
        return json_response({"opportunity": opportunity_to_dict(opportunity)}, status_code=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def opportunities_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _create_opportunity(ctx)
    return _list_opportunities(ctx)


def opportunity_detail_handler(ctx: RequestContext) -> func.HttpResponse:
    db = SessionLocal()
    try:
        opportunity = get_opportunity(db, ctx.route_param("opportunity_id"))
        if not opportunity:
            return not_found("Opportunity")
        if ctx.method == "GET":
            return json_response({"opportunity": opportunity_to_dict(opportunity)})
        if ctx.method == "DELETE":
            deactivate_opportunity(db, opportunity)
            db.commit()
            return json_response({"opportunity": opportunity_to_dict(opportunity)})

        try:
            values = validate_opportunity_payload(ctx.body(), partial=True)
        except ValueError as exc:
            return validation_error(str(exc))
        if values.get("contact_id") and not get_contact(db, values["contact_id"]):
            return not_found("Contact")
        previous_stage = opportunity.stage
        update_opportunity(db, opportunity, values)
        db.commit()
        if opportunity.stage != previous_stage:
            logger.info("Opportunity %s moved %s -> %s", opportunity.id, previous_stage, opportunity.stage)
        return json_response({"opportunity": opportunity_to_dict(opportunity)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


handle_opportunities = pipeline.protect(
    opportunities_handler,
    route="opportunities",
    methods=["GET", "POST"],
    rate_limits=CRUD_LIMITS,
)
handle_opportunity_detail = pipeline.protect(
    opportunity_detail_handler,
    route="opportunities/{opportunity_id}",
    methods=["GET", "PATCH", "DELETE"],
    rate_limits=CRUD_LIMITS,
)


@app.function_name(name="Opportunities")
@app.route(route="opportunities", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def opportunities(req: func.HttpRequest) -> func.HttpResponse:
    return handle_opportunities(req)


@app.function_name(name="OpportunityDetail")
@app.route(
    route="opportunities/{opportunity_id}",
    methods=["GET", "PATCH", "DELETE", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def opportunity_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_opportunity_detail(req)
