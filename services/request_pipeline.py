"""Authentication, rate limiting and error normalization around CRM handlers.

Every protected route is built with ``RequestPipeline.protect``. Stages run in
a fixed order and the first stage that produces a response ends the request:

    Received -> Unauthenticated | Authenticated
             -> RateLimited | Admitted
             -> HandlerError | HandlerSuccess

Handlers take a ``RequestContext`` and return an ``azure.functions.HttpResponse``.
They signal failure by raising; the pipeline turns that into a 500 envelope.
Validation problems are the handler's own business (it returns a 400).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

import azure.functions as func

from crm_shared import AuthOutcome, CRMActor, session_identity_provider
from services.rate_limiter import CRUD_READ, RateLimitConfig, RateLimitDecision, RateLimitStore
from shared.config import get_flag_setting, is_development
from utils.cors import build_cors_headers, preflight_response
from utils.http import (
    SECURITY_HEADERS,
    apply_default_headers,
    error_response,
    get_client_ip,
    json_response,
    parse_json_body,
    request_origin_key,
)

logger = logging.getLogger(__name__)

IdentityProvider = Callable[[func.HttpRequest], AuthOutcome]
RateLimits = Union[RateLimitConfig, Mapping[str, RateLimitConfig], None]


@dataclass
class RequestContext:
    """Per-request bundle handed from stage to stage and finally to the handler."""

    req: func.HttpRequest
    route: str
    actor: Optional[CRMActor] = None
    error: Optional[func.HttpResponse] = None
    rate_limit: Optional[RateLimitDecision] = None
    _body: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def method(self) -> str:
        return (self.req.method or "GET").upper()

    @property
    def params(self) -> Mapping[str, str]:
        return self.req.params or {}

    @property
    def route_params(self) -> Mapping[str, str]:
        return self.req.route_params or {}

    def route_param(self, name: str) -> str:
        return str(self.route_params.get(name) or "").strip()

    def body(self) -> Dict[str, Any]:
        if self._body is None:
            self._body = parse_json_body(self.req)
        return self._body


Handler = Callable[[RequestContext], func.HttpResponse]


def log_security_event(event: str, ctx: RequestContext, **details: Any) -> None:
    logger.warning(
        "[SECURITY] %s",
        {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "route": ctx.route,
            "method": ctx.method,
            "ip": get_client_ip(ctx.req),
            "userAgent": ctx.req.headers.get("user-agent") or "unknown",
            **details,
        },
    )


def internal_error_response(exc: BaseException) -> func.HttpResponse:
    payload: Dict[str, Any] = {
        "error": "Internal server error",
        "code": "internal_error",
        "message": "An unexpected error occurred",
    }
    if is_development():
        payload["details"] = {"type": type(exc).__name__, "detail": str(exc)}
    return json_response(payload, status_code=500)


def rate_limited_response(decision: RateLimitDecision) -> func.HttpResponse:
    reset_iso = datetime.fromtimestamp(decision.reset_at, tz=timezone.utc).isoformat()
    return error_response(
        status_code=429,
        message="Too many requests",
        code="rate_limited",
        retryAfter=decision.retry_after,
        headers={
            "Retry-After": str(decision.retry_after),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": reset_iso,
        },
    )


class RequestPipeline:
    """Builds protected route callables sharing one identity provider and counter store."""

    def __init__(
        self,
        *,
        store: Optional[RateLimitStore] = None,
        identity_provider: Optional[IdentityProvider] = None,
        rate_limit_enabled: Optional[bool] = None,
    ) -> None:
        self.store = store if store is not None else RateLimitStore()
        self.identity_provider = identity_provider or session_identity_provider
        if rate_limit_enabled is None:
            rate_limit_enabled = get_flag_setting("RATE_LIMIT_ENABLED", True)
        self.rate_limit_enabled = rate_limit_enabled

    # Stages --------------------------------------------------------------

    def authenticate(self, ctx: RequestContext, roles: Optional[Iterable[str]] = None) -> None:
        try:
            outcome = self.identity_provider(ctx.req)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Identity lookup failed for %s %s", ctx.method, ctx.route)
            ctx.error = internal_error_response(exc)
            return
        if outcome.error is not None or outcome.actor is None:
            ctx.error = outcome.error or error_response(
                status_code=401,
                message="Authentication required",
                code="auth_required",
            )
            log_security_event("authentication_failed", ctx, status=ctx.error.status_code)
            return
        ctx.actor = outcome.actor
        if roles is not None and ctx.actor.role not in set(roles):
            ctx.error = error_response(status_code=403, message="Insufficient role", code="forbidden")
            log_security_event("role_denied", ctx, userId=ctx.actor.user_id, role=ctx.actor.role)

    def rate_limit(self, ctx: RequestContext, config: Optional[RateLimitConfig]) -> None:
        if config is None or not self.rate_limit_enabled:
            return
        caller = f"user:{ctx.actor.user_id}" if ctx.actor else f"origin:{request_origin_key(ctx.req)}"
        try:
            decision = self.store.hit(f"{ctx.route}:{ctx.method}:{caller}", config)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Rate limit store failed for %s %s", ctx.method, ctx.route)
            ctx.error = internal_error_response(exc)
            return
        ctx.rate_limit = decision
        if not decision.allowed:
            ctx.error = rate_limited_response(decision)
            log_security_event("rate_limit_exceeded", ctx, caller=caller, limit=decision.limit)

    def invoke(self, ctx: RequestContext, handler: Handler) -> func.HttpResponse:
        try:
            response = handler(ctx)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in %s %s", ctx.method, ctx.route)
            return internal_error_response(exc)
        if not isinstance(response, func.HttpResponse):
            logger.error(
                "Handler for %s %s returned %s instead of an HttpResponse",
                ctx.method,
                ctx.route,
                type(response).__name__,
            )
            return internal_error_response(TypeError("handler returned a non-response value"))
        return response

    # Composition ---------------------------------------------------------

    def protect(
        self,
        handler: Handler,
        *,
        route: str,
        methods: Iterable[str],
        rate_limits: RateLimits = CRUD_READ,
        require_auth: bool = True,
        roles: Optional[Iterable[str]] = None,
        public_methods: Iterable[str] = (),
    ) -> Callable[[func.HttpRequest], func.HttpResponse]:
        """Wrap ``handler`` in the pipeline stages.

        ``public_methods`` skip authentication (and so ``roles``) while the
        route's other methods stay protected; they are rate limited per origin.
        """
        allowed_methods = [method.upper() for method in methods]
        anonymous_methods = {method.upper() for method in public_methods}
        allowed_roles = tuple(roles) if roles is not None else None

        def _config_for(method: str) -> Optional[RateLimitConfig]:
            if rate_limits is None or isinstance(rate_limits, RateLimitConfig):
                return rate_limits
            return rate_limits.get(method)

        def run(req: func.HttpRequest) -> func.HttpResponse:
            method = (req.method or "GET").upper()
            cors = build_cors_headers(req, allowed_methods)
            if method == "OPTIONS":
                return preflight_response(req, allowed_methods)
            if method not in allowed_methods:
                response = error_response(
                    status_code=405,
                    message=f"Method {method} not allowed",
                    code="method_not_allowed",
                    headers={"Allow": ", ".join(allowed_methods)},
                )
                return self._finish(response, cors)

            ctx = RequestContext(req=req, route=route)
            if require_auth and method not in anonymous_methods:
                self.authenticate(ctx, allowed_roles)
            if ctx.error is None:
                self.rate_limit(ctx, _config_for(method))
            if ctx.error is not None:
                return self._finish(ctx.error, cors)
            return self._finish(self.invoke(ctx, handler), cors)

        run.__name__ = getattr(handler, "__name__", "handler")
        run.__doc__ = handler.__doc__
        return run

    @staticmethod
    def _finish(response: func.HttpResponse, cors: Mapping[str, str]) -> func.HttpResponse:
        apply_default_headers(response, cors)
        return apply_default_headers(response, SECURITY_HEADERS)
