import azure.functions as func

from services.rate_limiter import RateLimitStore
from services.request_pipeline import RequestPipeline
from shared.db import init_db

# Initialize the database (creates tables and seeds default settings)
init_db()

app = func.FunctionApp()

# One counter store per host process, shared by every protected route.
rate_limit_store = RateLimitStore()
pipeline = RequestPipeline(store=rate_limit_store)

# Import endpoint modules so their routes register with the shared app.
import auth_endpoints  # noqa
import organizations_endpoints  # noqa
import contacts_endpoints  # noqa
import interactions_endpoints  # noqa
import opportunities_endpoints  # noqa
import tasks_endpoints  # noqa
import users_endpoints  # noqa
import settings_endpoints  # noqa
import dashboard_endpoints  # noqa
import health_endpoints  # noqa
