from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

import azure.functions as func

MAX_PAGE_SIZE = 50

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def json_response(
    data: Any,
    *,
    status_code: int = 200,
    headers: Optional[Mapping[str, str]] = None,
) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(data, default=_default),
        status_code=status_code,
        mimetype="application/json",
        headers=dict(headers or {}),
    )


def error_response(
    *,
    status_code: int,
    message: str,
    code: str,
    details: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
    **extra: Any,
) -> func.HttpResponse:
    payload: Dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        payload["details"] = details
    payload.update({key: value for key, value in extra.items() if value is not None})
    return json_response(payload, status_code=status_code, headers=headers)


def validation_error(message: str) -> func.HttpResponse:
    return error_response(status_code=400, message=message, code="validation_error")


def not_found(resource: str) -> func.HttpResponse:
    return error_response(status_code=404, message=f"{resource} not found", code="not_found")


def forbidden(message: str = "forbidden") -> func.HttpResponse:
    return error_response(status_code=403, message=message, code="forbidden")


def parse_json_body(req: func.HttpRequest) -> Dict[str, Any]:
    try:
        payload = req.get_json()
    except ValueError:
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


def get_limit(req: func.HttpRequest, default: int = MAX_PAGE_SIZE) -> int:
    raw = req.params.get("limit")
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        parsed = default
    return max(1, min(MAX_PAGE_SIZE, parsed))


def get_client_ip(req: func.HttpRequest) -> str:
    forwarded = req.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return req.headers.get("x-client-ip") or req.headers.get("x-real-ip") or "unknown"


def request_origin_key(req: func.HttpRequest) -> str:
    """Caller identifier for unauthenticated traffic: client IP plus a truncated user agent."""
    user_agent = (req.headers.get("user-agent") or "unknown")[:50]
    return f"{get_client_ip(req)}:{user_agent}"


def apply_default_headers(response: func.HttpResponse, defaults: Mapping[str, str]) -> func.HttpResponse:
    """Add each default header the response does not already carry."""
    for name, value in defaults.items():
        if name not in response.headers:
            response.headers[name] = value
    return response
