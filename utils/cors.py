from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import azure.functions as func

from shared.config import get_flag_setting, get_setting

DEFAULT_ALLOWED_HEADERS = ("Content-Type", "Authorization", "X-Requested-With")
EXPOSED_HEADERS = ("Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")
PREFLIGHT_MAX_AGE_SECONDS = "86400"
_LOCAL_PREFIXES = ("http://localhost", "https://localhost", "http://127.0.0.1")


def _configured_origins() -> List[str]:
    """Origins from ALLOWED_ORIGINS (comma separated); a bare ``*`` allows any origin."""
    raw = get_setting("ALLOWED_ORIGINS") or get_setting("CORS_ALLOWED_ORIGINS") or "*"
    origins = [item.strip().rstrip("/") for item in raw.split(",") if item.strip()]
    return ["*"] if "*" in origins else origins


ALLOWED_ORIGINS = _configured_origins()
ALLOW_CREDENTIALS = get_flag_setting("CORS_ALLOW_CREDENTIALS", False)
ALLOW_LOCALHOST = get_flag_setting("CORS_ALLOW_LOCALHOST", True)


def _is_local_origin(origin: Optional[str]) -> bool:
    return bool(origin) and origin.startswith(_LOCAL_PREFIXES)


def _allow_headers(req: func.HttpRequest) -> str:
    """Defaults plus whatever extra headers the browser asked for in its preflight."""
    names = {name.lower(): name for name in DEFAULT_ALLOWED_HEADERS}
    for requested in (req.headers.get("access-control-request-headers") or "").split(","):
        requested = requested.strip()
        if requested:
            names.setdefault(requested.lower(), requested)
    return ", ".join(names.values())


def _allow_methods(allowed_methods: Iterable[str]) -> str:
    methods: List[str] = []
    for method in list(allowed_methods) + ["OPTIONS"]:
        normalized = method.strip().upper()
        if normalized and normalized not in methods:
            methods.append(normalized)
    return ", ".join(methods)


def _resolve_allow_origin(origin: Optional[str]) -> Optional[str]:
    allow_any = not ALLOWED_ORIGINS or ALLOWED_ORIGINS == ["*"]
    permitted = (
        allow_any
        or (origin is not None and origin in ALLOWED_ORIGINS)
        or (ALLOW_LOCALHOST and _is_local_origin(origin))
    )
    if not permitted:
        return None
    if origin and (ALLOW_CREDENTIALS or not allow_any):
        return origin
    return "*"


def build_cors_headers(req: func.HttpRequest, allowed_methods: Iterable[str]) -> Dict[str, str]:
    """CORS headers for the caller's origin; only ``Vary`` when the origin is not allowed."""
    origin = (req.headers.get("origin") or "").rstrip("/") or None
    headers: Dict[str, str] = {"Vary": "Origin"}
    allow_origin = _resolve_allow_origin(origin)
    if allow_origin is None:
        return headers
    headers["Access-Control-Allow-Origin"] = allow_origin
    headers["Access-Control-Allow-Methods"] = _allow_methods(allowed_methods)
    headers["Access-Control-Allow-Headers"] = _allow_headers(req)
    headers["Access-Control-Expose-Headers"] = ", ".join(EXPOSED_HEADERS)
    if ALLOW_CREDENTIALS:
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def preflight_response(req: func.HttpRequest, allowed_methods: Iterable[str]) -> func.HttpResponse:
    headers = build_cors_headers(req, allowed_methods)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE_SECONDS
    return func.HttpResponse("", status_code=204, headers=headers)
