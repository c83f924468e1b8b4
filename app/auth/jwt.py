"""
JWT token issuance and validation.

Three token classes, each signed with its own secret:
- access:  subject + role, short-lived (10 hours by default)
- refresh: subject only, longer-lived (24 hours by default)
- decoy:   no claims at all; signed then Argon2-hashed so the login
           response always carries an opaque, expensive-to-produce value

Expiry is an absolute epoch timestamp, returned next to the token so callers
never have to parse it back out.
"""

from datetime import datetime, timezone
from typing import Optional

from jose import jws, jwt
from jose.exceptions import ExpiredSignatureError, JWSError, JWTClaimsError, JWTError
from pydantic import BaseModel, ConfigDict

from app.auth.password import hash_password
from app.core.config import SigningConfig
from app.core.errors import TokenError, TokenFailure

ACCESS = "access"
REFRESH = "refresh"


class IssuedToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    exp: int  # epoch seconds


class TokenClaims(BaseModel):
    """Decoded, verified token claims."""

    model_config = ConfigDict(frozen=True)

    sub: str
    type: str
    iat: int
    exp: int
    role: Optional[str] = None


def _now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class TokenIssuer:
    """Creates and validates signed tokens for one SigningConfig."""

    def __init__(self, config: SigningConfig):
        self.config = config

    def _sign(self, payload: dict, secret: str) -> str:
        return jwt.encode(payload, secret, algorithm=self.config.algorithm)

    def issue_access_token(self, principal_id: int | str, role: str) -> IssuedToken:
        """Create an access token. Returns the token and its absolute expiry."""
        now = _now()
        exp = now + int(self.config.access_ttl.total_seconds())
        payload = {
            "sub": str(principal_id),
            "role": role,
            "type": ACCESS,
            "iat": now,
            "exp": exp,
        }
        return IssuedToken(token=self._sign(payload, self.config.access_secret), exp=exp)

    def issue_refresh_token(self, principal_id: int | str) -> str:
        """
        Create a refresh token.

        Only issued; there is no exchange endpoint consuming it yet.
        """
        now = _now()
        payload = {
            "sub": str(principal_id),
            "type": REFRESH,
            "iat": now,
            "exp": now + int(self.config.refresh_ttl.total_seconds()),
        }
        return self._sign(payload, self.config.refresh_secret)

    def issue_decoy_token(self) -> str:
        """
        Sign a content-free payload with the decoy secret, then hash it.

        CPU-expensive on purpose; run it in a worker thread from async code.
        """
        bait = self._sign({"nothing": True}, self.config.decoy_secret)
        return hash_password(bait)

    def validate(self, token: Optional[str], secret: str, expected_type: Optional[str] = None) -> TokenClaims:
        """
        Verify signature and expiry of `token` against `secret`.

        Raises:
            TokenError: with MISSING, MALFORMED, INVALID_SIGNATURE or EXPIRED
        """
        if not token:
            raise TokenError(TokenFailure.MISSING)

        # Structure first, so a bad signature is never confused with garbage
        try:
            jws.get_unverified_header(token)
            claims = jwt.get_unverified_claims(token)
        except (JWSError, JWTError):
            raise TokenError(TokenFailure.MALFORMED)
        if not isinstance(claims, dict) or "sub" not in claims or "exp" not in claims:
            raise TokenError(TokenFailure.MALFORMED)

        try:
            payload = jwt.decode(token, secret, algorithms=[self.config.algorithm])
        except ExpiredSignatureError:
            raise TokenError(TokenFailure.EXPIRED)
        except JWTClaimsError:
            raise TokenError(TokenFailure.MALFORMED)
        except JWTError:
            raise TokenError(TokenFailure.INVALID_SIGNATURE)

        if expected_type is not None and payload.get("type") != expected_type:
            raise TokenError(TokenFailure.INVALID_SIGNATURE)

        try:
            return TokenClaims(
                sub=str(payload["sub"]),
                type=payload.get("type", ""),
                iat=int(payload.get("iat", 0)),
                exp=int(payload["exp"]),
                role=payload.get("role"),
            )
        except (KeyError, TypeError, ValueError):
            raise TokenError(TokenFailure.MALFORMED)

    def validate_access_token(self, token: Optional[str]) -> TokenClaims:
        return self.validate(token, self.config.access_secret, expected_type=ACCESS)

    def validate_refresh_token(self, token: Optional[str]) -> TokenClaims:
        return self.validate(token, self.config.refresh_secret, expected_type=REFRESH)
