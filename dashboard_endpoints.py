import azure.functions as func

from function_app import app, pipeline
from repository.dashboard_repo import dashboard_summary
from services.rate_limiter import CRUD_READ
from services.request_pipeline import RequestContext
from shared.db import SessionLocal
from utils.http import json_response


def dashboard_handler(ctx: RequestContext) -> func.HttpResponse:  # pylint: disable=unused-argument
    db = SessionLocal()
    try:
        return json_response(dashboard_summary(db))
    finally:
        db.close()


handle_dashboard = pipeline.protect(dashboard_handler, route="dashboard", methods=["GET"], rate_limits=CRUD_READ)


@app.function_name(name="Dashboard")
@app.route(route="dashboard", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def dashboard(req: func.HttpRequest) -> func.HttpResponse:
    return handle_dashboard(req)
