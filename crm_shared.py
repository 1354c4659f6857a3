from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional, Tuple

import azure.functions as func
from sqlalchemy import func as sa_func

from shared.config import get_session_secret, get_session_ttl_seconds
from shared.db import SessionLocal, User
from services.crm_rbac import normalize_role
from utils.http import error_response

logger = logging.getLogger(__name__)


@dataclass
class CRMActor:
    """The authenticated caller as seen by domain handlers."""

    user_id: str
    email: str
    role: str
    name: Optional[str] = None


class AuthOutcome(NamedTuple):
    """Result of the authentication stage: exactly one of actor or error is set."""

    actor: Optional[CRMActor]
    error: Optional[func.HttpResponse]


def _clean_email(value: Any) -> str:
    return str(value or "").strip().lower()


def _password_digest(salt: str, password: str) -> str:
    return hashlib.sha256(f"{salt}{password}".encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Salted SHA-256 stored as ``salt$hexdigest``."""
    salt = secrets.token_hex(16)
    return "$".join((salt, _password_digest(salt, password)))


def verify_password(password: str, stored: Optional[str]) -> bool:
    salt, sep, expected = (stored or "").partition("$")
    if not sep or not expected:
        return False
    return hmac.compare_digest(_password_digest(salt, password), expected)


# Session tokens are ``base64url(claims).base64url(hmac_sha256(claims))``.


def _segment(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _unsegment(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _signature(secret: str, claims: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), claims, hashlib.sha256).digest()


def _bearer_token(req: func.HttpRequest) -> str:
    scheme, _, credentials = str(req.headers.get("authorization") or "").strip().partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    fallback = req.params.get("auth_token")
    return fallback.strip() if isinstance(fallback, str) else ""


def issue_session_token(
    user: User,
    *,
    ttl_seconds: Optional[int] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """Return a signed session token and its ISO expiry, or (None, None) without a secret."""
    secret = get_session_secret()
    email = _clean_email(user.email)
    if not secret or not email:
        return None, None
    lifetime = ttl_seconds if isinstance(ttl_seconds, int) and ttl_seconds > 0 else get_session_ttl_seconds()
    expires = int(time.time()) + lifetime
    claims = json.dumps(
        {"sub": str(user.id), "email": email, "role": normalize_role(user.role), "exp": expires},
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")
    token = ".".join((_segment(claims), _segment(_signature(secret, claims))))
    return token, datetime.fromtimestamp(expires, tz=timezone.utc).isoformat()


def verify_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None when it is malformed, forged or expired."""
    secret = get_session_secret()
    claims_part, sep, signature_part = str(token or "").strip().partition(".")
    if not secret or not sep or not claims_part or not signature_part:
        return None
    try:
        claims_raw = _unsegment(claims_part)
        signature = _unsegment(signature_part)
    except (binascii.Error, ValueError):
        return None
    if not hmac.compare_digest(_signature(secret, claims_raw), signature):
        return None
    try:
        claims = json.loads(claims_raw)
        expires = int(claims["exp"])
    except (ValueError, TypeError, KeyError):
        return None
    if not isinstance(claims, dict) or expires <= int(datetime.now(timezone.utc).timestamp()):
        return None
    claims["email"] = _clean_email(claims.get("email"))
    if not claims["email"] or not claims.get("sub"):
        return None
    return claims


def find_user_by_email(db, email: str) -> Optional[User]:
    normalized = _clean_email(email)
    if not normalized:
        return None
    return (
        db.query(User)
        .filter(sa_func.lower(sa_func.trim(User.email)) == normalized)
        .order_by(User.created_at.asc())
        .first()
    )


def actor_for_user(user: User) -> CRMActor:
    return CRMActor(
        user_id=str(user.id),
        email=_clean_email(user.email),
        role=normalize_role(user.role),
        name=user.name,
    )


def _unauthenticated(message: str = "Authentication required") -> func.HttpResponse:
    return error_response(status_code=401, message=message, code="auth_required")


def session_identity_provider(req: func.HttpRequest) -> AuthOutcome:
    """Resolve the caller from a bearer session token against the users table."""
    claims = verify_session_token(_bearer_token(req))
    if not claims:
        return AuthOutcome(None, _unauthenticated())

    db = SessionLocal()
    try:
        user = db.query(User).filter_by(id=str(claims["sub"])).one_or_none()
        if not user or _clean_email(user.email) != claims["email"]:
            return AuthOutcome(None, _unauthenticated())
        if not user.is_active:
            return AuthOutcome(
                None,
                error_response(status_code=403, message="Account inactive", code="account_inactive"),
            )
        return AuthOutcome(actor_for_user(user), None)
    finally:
        db.close()
