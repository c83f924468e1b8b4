from datetime import timedelta

import pytest
from jose import jwt
from pydantic import ValidationError

from app.auth.audit import RequestMetadata
from app.auth.jwt import TokenIssuer
from app.auth.password import verify_password
from app.core.config import SigningConfig
from app.core.errors import TokenError, TokenFailure

from conftest import TEST_SIGNING


def failure_of(call, *args):
    with pytest.raises(TokenError) as exc_info:
        call(*args)
    return exc_info.value.failure


def test_access_token_round_trip(issuer):
    issued = issuer.issue_access_token(42, "supervisor")
    claims = issuer.validate_access_token(issued.token)

    assert claims.sub == "42"
    assert claims.role == "supervisor"
    assert claims.exp == issued.exp
    assert claims.type == "access"


def test_access_expiry_uses_configured_ttl(issuer):
    issued = issuer.issue_access_token(1, "admin")
    claims = issuer.validate_access_token(issued.token)
    assert claims.exp - claims.iat == 10 * 3600


def test_refresh_token_round_trip(issuer):
    token = issuer.issue_refresh_token(7)
    claims = issuer.validate_refresh_token(token)

    assert claims.sub == "7"
    assert claims.role is None
    assert claims.exp - claims.iat == 24 * 3600


def test_access_token_rejected_by_refresh_secret(issuer):
    token = issuer.issue_access_token(1, "admin").token
    assert failure_of(issuer.validate, token, TEST_SIGNING.refresh_secret) is TokenFailure.INVALID_SIGNATURE
    assert failure_of(issuer.validate_refresh_token, token) is TokenFailure.INVALID_SIGNATURE


def test_refresh_token_rejected_as_access(issuer):
    token = issuer.issue_refresh_token(1)
    assert failure_of(issuer.validate, token, TEST_SIGNING.access_secret) is TokenFailure.INVALID_SIGNATURE
    assert failure_of(issuer.validate_access_token, token) is TokenFailure.INVALID_SIGNATURE


def test_expired_token_rejected():
    expired_issuer = TokenIssuer(SigningConfig(
        access_secret="a-secret",
        refresh_secret="r-secret",
        decoy_secret="d-secret",
        access_ttl=timedelta(seconds=-30),
    ))
    token = expired_issuer.issue_access_token(1, "admin").token

    assert failure_of(expired_issuer.validate_access_token, token) is TokenFailure.EXPIRED


def test_foreign_signature_rejected(issuer):
    forged = jwt.encode({"sub": "1", "role": "admin", "type": "access", "exp": 9999999999}, "attacker", algorithm="HS256")
    assert failure_of(issuer.validate_access_token, forged) is TokenFailure.INVALID_SIGNATURE


@pytest.mark.parametrize("token", ["garbage", "a.b.c", "only.two"])
def test_malformed_token(issuer, token):
    assert failure_of(issuer.validate_access_token, token) is TokenFailure.MALFORMED


def test_token_without_subject_is_malformed(issuer):
    token = jwt.encode({"type": "access", "exp": 9999999999}, TEST_SIGNING.access_secret, algorithm="HS256")
    assert failure_of(issuer.validate_access_token, token) is TokenFailure.MALFORMED


@pytest.mark.parametrize("token", [None, ""])
def test_missing_token(issuer, token):
    assert failure_of(issuer.validate_access_token, token) is TokenFailure.MISSING


def test_decoy_is_a_hash_of_a_content_free_token(issuer):
    decoy = issuer.issue_decoy_token()
    bait = jwt.encode({"nothing": True}, TEST_SIGNING.decoy_secret, algorithm="HS256")

    assert decoy.startswith("$argon2")
    assert verify_password(bait, decoy)
    assert decoy != issuer.issue_decoy_token()


def test_secrets_must_be_distinct():
    with pytest.raises(ValueError):
        SigningConfig(access_secret="same", refresh_secret="same", decoy_secret="other")


def test_secrets_must_be_present():
    with pytest.raises(ValueError):
        SigningConfig(access_secret="", refresh_secret="r", decoy_secret="d")


def test_from_env_reads_secrets(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "env-access")
    monkeypatch.setenv("JWT_REFRESH", "env-refresh")
    monkeypatch.setenv("JWT_BAIT", "env-bait")

    config = SigningConfig.from_env()

    assert (config.access_secret, config.refresh_secret, config.decoy_secret) == ("env-access", "env-refresh", "env-bait")
    assert SigningConfig.missing_env_secrets() == []


def test_value_objects_are_immutable(issuer, users):
    issued = issuer.issue_access_token(users["admin"], "admin")
    claims = issuer.validate_access_token(issued.token)

    with pytest.raises(ValidationError):
        TEST_SIGNING.access_secret = "swapped"
    with pytest.raises(ValidationError):
        issued.exp = 0
    with pytest.raises(ValidationError):
        claims.role = "viewer"

    assert claims.exp == issued.exp
    assert claims.sub == str(users["admin"])


def test_request_metadata_with_notes_copies():
    metadata = RequestMetadata(ip_address="203.0.113.9", user_agent="ua")
    noted = metadata.with_notes("rename")

    assert noted == RequestMetadata(ip_address="203.0.113.9", user_agent="ua", notes="rename")
    assert metadata.notes is None
