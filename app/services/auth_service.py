"""
Login flow.

Absent user, inactive user and wrong password all end in the same
CredentialError; only the log line says which one it was.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.auth.audit import RequestMetadata
from app.auth.jwt import TokenIssuer
from app.auth.password import hash_password, needs_rehash, verify_password
from app.core.errors import CredentialError
from app.core.log import log_event
from app.core.store import DocumentStore
from app.models.user import User

logger = logging.getLogger(__name__)


def _reject(reason: str, username: str, metadata: RequestMetadata) -> CredentialError:
    log_event(
        logger, logging.WARNING, "LOGIN_FAILURE",
        reason=reason,
        username=username,
        ip=metadata.ip_address,
        user_agent=metadata.user_agent,
    )
    return CredentialError(reason)


async def login(
    db: AsyncSession,
    issuer: TokenIssuer,
    username: str,
    password: str,
    metadata: RequestMetadata,
) -> dict[str, Any]:
    """
    Authenticate by username and password.

    Returns the login payload:
        accessToken, exp, refreshToken, user (decoy value), dataUser (profile)

    Raises:
        CredentialError: for every credential-related failure
    """
    username = (username or "").strip().lower()
    store = DocumentStore(db, User)

    user = await store.find_one(username=username)
    if user is None:
        raise _reject("unknown_user", username, metadata)

    if not user.is_active:
        raise _reject(f"status_{user.status.value}", username, metadata)

    if not await run_in_threadpool(verify_password, password, user.password_hash):
        raise _reject("password_mismatch", username, metadata)

    fields: dict[str, Any] = {"last_login": datetime.now(timezone.utc)}
    # Upgrade the digest when the hashing parameters were raised
    if needs_rehash(user.password_hash):
        fields["password_hash"] = await run_in_threadpool(hash_password, password)
    user = await store.find_by_id_and_update(user.id, fields)

    access = issuer.issue_access_token(user.id, user.role.value)
    refresh_token = issuer.issue_refresh_token(user.id)
    decoy = await run_in_threadpool(issuer.issue_decoy_token)

    log_event(
        logger, logging.INFO, "LOGIN_SUCCESS",
        user_id=user.id,
        username=user.username,
        role=user.role.value,
        ip=metadata.ip_address,
    )

    return {
        "accessToken": access.token,
        "exp": access.exp,
        "refreshToken": refresh_token,
        "user": decoy,
        "dataUser": user.to_public(),
    }
