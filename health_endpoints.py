import logging
import time
from datetime import datetime, timezone

import azure.functions as func
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from function_app import app, pipeline
from services.rate_limiter import PUBLIC
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import json_response

logger = logging.getLogger(__name__)


def health_handler(ctx: RequestContext) -> func.HttpResponse:  # pylint: disable=unused-argument
    started = time.perf_counter()
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = {"status": "healthy", "latencyMs": round((time.perf_counter() - started) * 1000, 2)}
    except SQLAlchemyError as exc:
        logger.error("Health check database probe failed: %s", exc)
        database = {"status": "unhealthy", "error": "Database unreachable"}
    finally:
        db.close()

    healthy = database["status"] == "healthy"
    return json_response(
        {
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {"database": database},
        },
        status_code=200 if healthy else 503,
    )


handle_health = pipeline.protect(
    health_handler,
    route="health",
    methods=["GET"],
    rate_limits=PUBLIC,
    require_auth=False,
)


@app.function_name(name="HealthApi")
@app.route(route="health", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def health_api(req: func.HttpRequest) -> func.HttpResponse:
    return handle_health(req)
