"""
Security helpers: organizer tokens, signatures and request dependencies.

Bearer tokens are compact JWTs signed with HMAC-SHA256 and
base64url-encoded.  They embed the organizer id, issuer, audience and
an expiration timestamp (``exp``).  Payment signatures use the same
HMAC primitive with organizer-specific secrets.

FastAPI dependencies defined here resolve the acting organizer either
from credentials (``X-Secret-Key`` header or bearer token) or, for
public pages, from the domain the request originates from.
"""

import base64
import hashlib
import hmac
import json
import logging
import re
import secrets
import time
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .db import get_connection

logger = logging.getLogger(__name__)


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64-url encoded string, adding padding if necessary."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    """Compute HMAC-SHA256 signature of a message using the given secret."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    """Hex digest used by the payment gateway for webhook and checkout signatures."""
    return _sign(message, secret).hex()


def signatures_match(expected: str, provided: Optional[str]) -> bool:
    """Constant-time comparison of two signature strings."""
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.strip().encode("utf-8"))


def generate_secret_key() -> str:
    """Random organizer secret key, returned to the organizer once."""
    return f"evk_{secrets.token_urlsafe(32)}"


def create_access_token(data: Dict[str, object], expires_delta: Optional[int] = None) -> str:
    """Create a signed JWT token with the given payload.

    The payload is extended with ``exp``, ``iat``, ``iss`` and ``aud``
    claims.  Clients send the token as ``Authorization: Bearer <token>``.

    Parameters
    ----------
    data : dict
        Claims to embed in the token (e.g. ``{"organizer_id": 1}``).
    expires_delta : Optional[int]
        Lifetime of the token in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    to_encode = dict(data)
    now = int(time.time())
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    to_encode.update(
        {
            "iat": now,
            "exp": now + exp_seconds,
            "iss": settings.token_issuer,
            "aud": settings.token_audience,
        }
    )
    header = {"alg": settings.algorithm, "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def decode_access_token(token: str) -> Optional[Dict[str, object]]:
    """Verify and decode a JWT token.

    Checks the signature, expiry, issuer and audience.  Returns the
    payload dictionary on success and ``None`` otherwise.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    try:
        actual_sig = _b64_url_decode(signature_b64)
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not hmac.compare_digest(_sign(signing_input, settings.secret_key), actual_sig):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("exp") is None or int(data["exp"]) < int(time.time()):
        return None
    if data.get("iss") != settings.token_issuer or data.get("aud") != settings.token_audience:
        return None
    return data


def normalize_domain(origin: Optional[str]) -> Optional[str]:
    """Reduce an Origin/Host header or user-supplied URL to a bare domain.

    Removes scheme, port, path, trailing slash and a leading ``www.``
    and lower-cases the result.  Returns ``None`` for empty input.
    """
    if not origin:
        return None
    domain = re.sub(r"^https?://", "", origin.strip().lower())
    domain = domain.split("/", 1)[0]
    domain = domain.split(":", 1)[0]
    domain = re.sub(r"^www\.", "", domain)
    return domain or None


def _fetch_organizer(where: str, value: object) -> Optional[dict]:
    conn = get_connection()
    try:
        row = conn.execute(
            f"SELECT * FROM organizers WHERE {where} = ? AND is_active = 1 AND deleted_at IS NULL",
            (value,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


security = HTTPBearer(auto_error=False)


def get_current_organizer(
    x_secret_key: Optional[str] = Header(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """Dependency that resolves the authenticated organizer.

    Accepts either the organizer's secret key in ``X-Secret-Key`` or a
    bearer token issued by ``POST /organizers/token``.  Raises HTTP 401
    when neither is present or valid.
    """
    if x_secret_key:
        organizer = _fetch_organizer("secret_key", x_secret_key)
        if organizer:
            return organizer
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or payload.get("organizer_id") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    organizer = _fetch_organizer("id", payload["organizer_id"])
    if not organizer:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Organizer no longer exists",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return organizer


def resolve_request_organizer(
    origin: Optional[str] = Header(default=None),
    host: Optional[str] = Header(default=None),
) -> Optional[dict]:
    """Dependency that maps the requesting domain to an organizer.

    This is scoping, not authentication: requests from an unknown
    domain continue with ``None`` and each endpoint decides how to
    handle the missing organizer.
    """
    domain = normalize_domain(origin or host)
    if not domain:
        return None
    organizer = _fetch_organizer("website_domain", domain)
    if organizer:
        logger.debug("Resolved organizer %s for domain %s", organizer["id"], domain)
    else:
        logger.debug("No organizer found for domain %s", domain)
    return organizer


def require_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    """Guard for scheduler-triggered endpoints."""
    expected = settings.cron_secret
    if not expected or not signatures_match(expected, x_cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
