import os

# Configuration is read at import time by shared.db, so pin it before any test module loads.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("AUTH_SESSION_SECRET", "unit-test-session-secret")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
