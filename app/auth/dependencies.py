"""
FastAPI dependencies for authentication and authorization.

Provides:
- authenticate: resolve the principal behind `Authorization: Bearer <token>`
- check_access / require_role: role gate, run strictly after authenticate
- get_client_ip / get_user_agent: request metadata for logs and audit
"""

import logging
from enum import Enum
from typing import Collection, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import TokenClaims, TokenIssuer
from app.core.database import get_db
from app.core.errors import AuthorizationError, TokenError, TokenFailure
from app.core.log import log_event
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


def get_token_issuer(request: Request) -> TokenIssuer:
    """The issuer built from the app's SigningConfig at startup."""
    return request.app.state.token_issuer


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request headers."""
    return request.headers.get("User-Agent", "unknown")[:500]  # Limit length


def parse_bearer(authorization: Optional[str]) -> str:
    """Return the token from a `Bearer <token>` header value."""
    if not authorization:
        raise TokenError(TokenFailure.MISSING)

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise TokenError(TokenFailure.MALFORMED_CREDENTIAL)

    return parts[1]


async def resolve_principal(db: AsyncSession, claims: TokenClaims) -> User:
    """
    Load the user named by the token subject.

    Status is always re-read from the store, so a user deactivated after the
    token was issued is rejected on the next request.
    """
    try:
        user_id = int(claims.sub)
    except ValueError:
        raise TokenError(TokenFailure.MALFORMED)

    user = await db.get(User, user_id)
    if user is None:
        raise TokenError(TokenFailure.UNKNOWN_PRINCIPAL)
    if not user.is_active:
        raise TokenError(TokenFailure.INACTIVE_PRINCIPAL)

    return user


async def authenticate(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> User:
    """
    Resolve the current user from the bearer token and attach it to
    `request.state.principal`.

    Raises:
        TokenError (401): missing, wrong scheme, bad signature, expired,
            malformed, unknown or inactive principal
    """
    try:
        token = parse_bearer(authorization)
        claims = issuer.validate_access_token(token)
        user = await resolve_principal(db, claims)
    except TokenError as exc:
        log_event(
            logger, logging.WARNING, "AUTH_FAILURE",
            cause=exc.failure.value,
            ip=get_client_ip(request),
            path=request.url.path,
        )
        raise

    request.state.principal = user
    log_event(
        logger, logging.INFO, "AUTH_SUCCESS",
        user_id=user.id,
        username=user.username,
        role=user.role.value,
        ip=get_client_ip(request),
        path=request.url.path,
    )
    return user


class AccessDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    UNAUTHENTICATED = "unauthenticated"


def check_access(principal: Optional[User], allowed_roles: Collection[UserRole]) -> AccessDecision:
    """
    Decide whether `principal` may proceed.

    An empty `allowed_roles` admits any authenticated principal. A missing
    principal is UNAUTHENTICATED, never DENY.
    """
    if principal is None:
        return AccessDecision.UNAUTHENTICATED
    if not allowed_roles:
        return AccessDecision.ALLOW
    if principal.role in allowed_roles:
        return AccessDecision.ALLOW
    return AccessDecision.DENY


def enforce_access(request: Request, allowed_roles: Collection[UserRole]) -> User:
    """Apply check_access to the principal on the request, logging the outcome."""
    principal: Optional[User] = getattr(request.state, "principal", None)
    decision = check_access(principal, allowed_roles)
    required = sorted(role.value for role in allowed_roles)
    ip = get_client_ip(request)
    path = request.url.path

    if decision is AccessDecision.UNAUTHENTICATED:
        log_event(
            logger, logging.WARNING, "AUTHORIZATION_FAILURE",
            error="no authenticated principal", required_roles=required, ip=ip, path=path,
        )
        raise TokenError(TokenFailure.NOT_AUTHENTICATED)

    if decision is AccessDecision.DENY:
        log_event(
            logger, logging.WARNING, "AUTHORIZATION_FAILURE",
            error="role not permitted",
            user_role=principal.role.value,
            required_roles=required,
            user_id=principal.id,
            ip=ip,
            path=path,
        )
        raise AuthorizationError()

    log_event(
        logger, logging.INFO, "AUTHORIZATION_SUCCESS",
        user_role=principal.role.value,
        required_roles=required,
        user_id=principal.id,
        ip=ip,
        path=path,
    )
    return principal


def require_role(*allowed_roles: UserRole):
    """
    Dependency to require specific role(s). No roles means "any
    authenticated user".

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(
            user: User = Depends(require_role(UserRole.ADMIN))
        ):
            ...
    """
    roles = frozenset(allowed_roles)

    async def role_checker(
        request: Request,
        current_user: User = Depends(authenticate),
    ) -> User:
        return enforce_access(request, roles)

    return role_checker
