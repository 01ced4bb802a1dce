"""Caller identity resolution.

Every request resolves to exactly one identity string:

- ``user:<sub>`` when a bearer credential decodes to a non-expired token that
  carries both a ``sub`` and an ``email`` claim
- ``ip:<hash>`` otherwise, where the hash is a salted one-way SHA-256 of the
  first address found in the proxy headers

A malformed or expired credential is treated exactly like a missing one: the
resolver never raises, it falls back to the address-based identity.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Annotated, Any, Mapping

import jwt
from fastapi import Depends, Header, Request

from cafe_api.core.config import settings
from cafe_api.core.errors import AuthenticationAppError
from cafe_api.core.logging import set_log_identity

logger = logging.getLogger(__name__)

# Order of trust; the first present header wins
CLIENT_IP_HEADERS: tuple[str, ...] = (
    "x-real-ip",
    "x-forwarded-for",
    "cf-connecting-ip",
    "fastly-client-ip",
    "x-client-ip",
    "x-cluster-client-ip",
    "forwarded-for",
    "forwarded",
)

UNKNOWN_ADDRESS = "unknown"
USER_PREFIX = "user:"
IP_PREFIX = "ip:"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Claims extracted from a verified bearer credential."""

    sub: str
    email: str
    name: str | None = None
    picture: str | None = None


@dataclass(frozen=True)
class CallerContext:
    """Resolved caller for the current request.

    Attributes:
        identity: ``user:<sub>`` or ``ip:<hash>``.
        user: Credential claims when authenticated.
        client_ip: Raw client address (never persisted in identity-keyed records).
        ip_hash: Salted hash of ``client_ip``.
    """

    identity: str
    user: AuthenticatedUser | None
    client_ip: str
    ip_hash: str

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def anonymous_identity(self) -> str:
        """The address-derived identity this caller had (or would have) pre-login."""
        return ip_identity(self.ip_hash)


def extract_client_ip(headers: Mapping[str, str]) -> str:
    """Return the client address from the first present proxy header.

    Args:
        headers: Request headers (case-insensitive mapping, or lower-cased keys).

    Returns:
        The first comma-separated value of the first non-empty header, or
        ``"unknown"`` when none is present.
    """
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if value:
            ip = value.split(",")[0].strip()
            if ip:
                return ip
    return UNKNOWN_ADDRESS


def hash_ip(ip: str, salt: str | None = None) -> str:
    """One-way salted hash of a network address (32 hex chars)."""
    salt = settings.app.ip_hash_salt if salt is None else salt
    return hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()[:32]


def user_identity(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def ip_identity(ip_hash: str) -> str:
    return f"{IP_PREFIX}{ip_hash}"


def _decode_claims(token: str) -> dict[str, Any]:
    grace = settings.app.token_expiry_grace_seconds
    if settings.app.token_secret:
        return jwt.decode(
            token,
            settings.app.token_secret,
            algorithms=settings.app.token_algorithm_list,
            leeway=grace,
            options={"verify_aud": False},
        )
    # Identity provider already verified the signature client-side
    return jwt.decode(
        token,
        options={"verify_signature": False, "verify_exp": True},
        leeway=grace,
    )


def decode_credential(token: str | None) -> AuthenticatedUser | None:
    """Decode a bearer token into user claims.

    Returns:
        AuthenticatedUser, or None when the token is missing, malformed,
        expired beyond the grace period, or lacks ``sub``/``email``.
    """
    if not token:
        return None

    try:
        claims = _decode_claims(token)
    except jwt.ExpiredSignatureError:
        logger.info("identity.token_expired")
        return None
    except jwt.PyJWTError as exc:
        logger.info("identity.token_invalid", extra={"reason": type(exc).__name__})
        return None

    sub = claims.get("sub")
    email = claims.get("email")
    if not sub or not email:
        logger.info("identity.token_missing_claims")
        return None

    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and time.time() >= exp:
        logger.debug("identity.token_in_grace_period")

    return AuthenticatedUser(
        sub=str(sub),
        email=str(email),
        name=claims.get("name"),
        picture=claims.get("picture"),
    )


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):].strip() or None


def resolve_identity(
    authorization: str | None, headers: Mapping[str, str]
) -> CallerContext:
    """Resolve the caller identity for a request. Never raises.

    Args:
        authorization: Raw ``Authorization`` header value.
        headers: Request headers used for address extraction.

    Returns:
        CallerContext with exactly one identity.
    """
    client_ip = extract_client_ip(headers)
    ip_hash = hash_ip(client_ip)
    user = decode_credential(parse_bearer(authorization))

    identity = user_identity(user.sub) if user else ip_identity(ip_hash)
    return CallerContext(identity=identity, user=user, client_ip=client_ip, ip_hash=ip_hash)


async def get_caller(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> CallerContext:
    """FastAPI dependency resolving the caller (authenticated or anonymous)."""
    caller = resolve_identity(authorization, request.headers)
    set_log_identity(caller.identity)
    logger.debug(
        "identity.resolved",
        extra={"authenticated": caller.is_authenticated},
    )
    return caller


async def require_user(
    caller: Annotated[CallerContext, Depends(get_caller)],
) -> CallerContext:
    """FastAPI dependency requiring a valid bearer credential.

    Raises:
        AuthenticationAppError: 401 when the caller is anonymous.
    """
    if not caller.is_authenticated:
        raise AuthenticationAppError(
            code="unauthorized",
            message="A valid bearer token is required",
            details={"hint": "Sign in and send Authorization: Bearer <token>"},
        )
    return caller
