"""
Authentication and Authorization module.

Provides:
- Token issuance and validation (access, refresh, decoy)
- Password hashing (Argon2id) and password policy
- Role-based access control (app.auth.dependencies)
- Audit trail recording (app.auth.audit)

Only the leaf modules are re-exported here; dependencies and audit pull in
the models and must be imported explicitly.
"""

from app.auth.jwt import (
    IssuedToken,
    TokenClaims,
    TokenIssuer,
)
from app.auth.password import (
    ensure_password_policy,
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)

__all__ = [
    # Tokens
    "IssuedToken",
    "TokenClaims",
    "TokenIssuer",
    # Password
    "ensure_password_policy",
    "hash_password",
    "needs_rehash",
    "validate_password_strength",
    "verify_password",
]
