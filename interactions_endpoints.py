import logging
from typing import Any, Dict, List

import azure.functions as func

from function_app import app, pipeline
from repository.interactions_repo import (
    create_interactions,
    find_missing_references,
    interaction_to_dict,
    list_interactions,
)
from repository.organizations_repo import touch_last_contact
from schemas.interaction_schema import normalize_type_filter, validate_bulk_payload, validate_interaction_payload
from services.rate_limiter import CRUD_LIMITS
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import error_response, get_limit, json_response, validation_error

logger = logging.getLogger(__name__)


def _list_interactions(ctx: RequestContext) -> func.HttpResponse:
    organization_id = str(ctx.params.get("organizationId") or "").strip()
    if not organization_id:
        return validation_error("organizationId is required")
    try:
        interaction_type = normalize_type_filter(ctx.params.get("type"))
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        rows = list_interactions(
            db,
            organization_id=organization_id,
            contact_id=str(ctx.params.get("contactId") or "").strip() or None,
            interaction_type=interaction_type,
            limit=get_limit(ctx.req),
        )
        return json_response({"interactions": [interaction_to_dict(row) for row in rows], "count": len(rows)})
    finally:
        db.close()


def _create_interactions(ctx: RequestContext) -> func.HttpResponse:
    body = ctx.body()
    bulk = "interactions" in body
    try:
        items: List[Dict[str, Any]] = validate_bulk_payload(body) if bulk else [validate_interaction_payload(body)]
    except ValueError as exc:
        return validation_error(str(exc))

    db = SessionLocal()
    try:
        missing = find_missing_references(db, items)
        if missing:
            return error_response(
                status_code=404,
                message="Referenced organization or contact not found",
                code="not_found",
                details=missing,
            )
        created, skipped = create_interactions(
            db,
            items,
            user_id=ctx.actor.user_id,
            skip_duplicates=bool(body.get("skipDuplicates")),
        )
        touch_last_contact(db, [row.organization_id for row in created])
        db.commit()
        logger.info("Recorded %s interactions (%s duplicates skipped)", len(created), skipped)
        if not bulk and not created:
            return json_response({"interaction": None, "skipped": skipped})
        if not bulk:
            return json_response({"interaction": interaction_to_dict(created[0])}, status_code=201)
        return json_response(
            {
                "interactions": [interaction_to_dict(row) for row in created],
                "created": len(created),
                "skipped": skipped,
            },
            status_code=201,
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def interactions_handler(ctx: RequestContext) -> func.HttpResponse:
    if ctx.method == "POST":
        return _create_interactions(ctx)
    return _list_interactions(ctx)


handle_interactions = pipeline.protect(
    interactions_handler,
    route="interactions",
    methods=["GET", "POST"],
    rate_limits=CRUD_LIMITS,
)


@app.function_name(name="Interactions")
@app.route(route="interactions", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def interactions(req: func.HttpRequest) -> func.HttpResponse:
    return handle_interactions(req)
